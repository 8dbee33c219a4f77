'''
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`engine.py`
===========

The variational lower bound (ELBO) on the log-likelihood of a set of
images, and its derivatives with respect to the parameters of the
active sources.
'''
import logging

import numpy as np

from vitractor.params import CanonicalParams, Ia
from vitractor.sensitive import SensitiveFloat, assert_all_finite
from vitractor.mixtures import BivariateNormalDerivatives, \
    load_bvn_mixtures, populate_fsm_vecs
from vitractor.brightness import load_source_brightnesses
from vitractor.pixel import add_pixel_term, \
    accumulate_source_pixel_brightness
from vitractor.priors import PriorParams, subtract_kl

logger = logging.getLogger('vitractor.engine')
def logverb(*args):
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(' '.join(map(str, args)))
def logmsg(*args):
    logger.info(' '.join(map(str, args)))
def isverbose():
    return logger.isEnabledFor(logging.DEBUG)

def set_fp_err():
    '''Cause all floating-point errors to raise exceptions.
    Returns the current error state so you can revert via:

        olderr = set_fp_err()
        # do stuff
        np.seterr(**olderr)
    '''
    return np.seterr(all='raise')


class ElboArgs(object):
    '''
    Everything the ELBO depends on.

    - `images`: list of N `Image`s
    - `vp`: list of S canonical parameter vectors
    - `patches`: patches[s][n], the `SkyPatch` of source s in image n
    - `active_sources`: indices of the sources to differentiate
    - `num_allowed_sd`: skip mixture components farther than this many
      standard deviations from a pixel (np.inf: never skip)
    - `ids`: the `CanonicalParams` index table
    - `prior`: `PriorParams` for the KL term
    '''
    def __init__(self, images, vp, patches, active_sources,
                 num_allowed_sd=np.inf, ids=None, prior=None):
        if ids is None:
            ids = CanonicalParams()
        self.ids = ids
        self.images = images
        self.vp = [np.asarray(vs, dtype=float) for vs in vp]
        self.patches = patches
        self.active_sources = [int(s) for s in active_sources]
        self.num_allowed_sd = num_allowed_sd
        if prior is None:
            prior = PriorParams(B=ids.B, D=ids.D)
        self.prior = prior

        assert(len(self.patches) == self.S)
        for s in range(self.S):
            assert(len(self.patches[s]) == self.N)
            assert(len(self.vp[s]) == ids.size)
        assert(len(set(self.active_sources)) == len(self.active_sources))
        for s in self.active_sources:
            assert(0 <= s < self.S)
        # source index -> position within active_sources
        self.active_index = dict((s, sa) for sa, s in
                                 enumerate(self.active_sources))

    def __str__(self):
        return ('ElboArgs: %i images, %i sources (%i active)' %
                (self.N, self.S, len(self.active_sources)))

    @property
    def S(self):
        return len(self.vp)

    @property
    def N(self):
        return len(self.images)


class HessianSubmatrices(object):
    '''
    Per-type pieces of a source's Hessian that must be summed over
    types.
    '''
    def __init__(self, n_shared, dtype=np.float64):
        self.u_u = np.zeros((n_shared, n_shared), dtype)


class ElboIntermediateVariables(object):
    '''
    Scratch space for one ELBO evaluation.  A caller that evaluates
    several ELBOs concurrently needs one of these for each.

    *S* is the number of sources and *num_active* the number of
    active sources; the global sensitive floats have one block of
    canonical parameters per active source.
    '''
    def __init__(self, S, num_active, ids=None, calculate_derivs=True,
                 calculate_hessian=True, dtype=np.float64):
        if ids is None:
            ids = CanonicalParams()
        self.S = S
        self.num_active = num_active
        self.dtype = dtype
        self.calculate_derivs = calculate_derivs
        self.calculate_hessian = calculate_derivs and calculate_hessian
        self.has_hessian = self.calculate_hessian

        hess = self.calculate_hessian
        self.bvn_derivs = BivariateNormalDerivatives(dtype)
        self.fs0m_vec = [SensitiveFloat(ids.star_ids.size, 1,
                                        has_hessian=hess, dtype=dtype)
                         for s in range(S)]
        self.fs1m_vec = [SensitiveFloat(ids.gal_ids.size, 1,
                                        has_hessian=hess, dtype=dtype)
                         for s in range(S)]

        self.E_G_s = SensitiveFloat(ids.size, 1, has_hessian=hess,
                                    dtype=dtype)
        self.E_G2_s = SensitiveFloat(ids.size, 1, has_hessian=hess,
                                     dtype=dtype)
        self.var_G_s = SensitiveFloat(ids.size, 1, has_hessian=hess,
                                      dtype=dtype)
        n_shared = len(ids.shared_shape_ids)
        self.E_G_s_hsub_vec = [HessianSubmatrices(n_shared, dtype)
                               for i in range(Ia)]
        self.E_G2_s_hsub_vec = [HessianSubmatrices(n_shared, dtype)
                                for i in range(Ia)]

        self.E_G = SensitiveFloat(ids.size, num_active, has_hessian=hess,
                                  dtype=dtype)
        self.var_G = SensitiveFloat(ids.size, num_active, has_hessian=hess,
                                    dtype=dtype)

        self.combine_grad = np.zeros(2, dtype)
        self.combine_hess = np.zeros((2, 2), dtype)

        self.elbo_log_term = SensitiveFloat(ids.size, num_active,
                                            has_hessian=hess, dtype=dtype)
        self.elbo = SensitiveFloat(ids.size, num_active, has_hessian=hess,
                                   dtype=dtype)

    def clear(self):
        self.elbo.clear()
        self.elbo_log_term.clear()
        self.E_G.clear()
        self.var_G.clear()

    def setFlags(self, calculate_derivs, calculate_hessian):
        calculate_hessian = calculate_derivs and calculate_hessian
        assert(self.has_hessian or not calculate_hessian)
        self.calculate_derivs = calculate_derivs
        self.calculate_hessian = calculate_hessian


def elbo_likelihood(ea, calculate_derivs=True, calculate_hessian=True,
                    elbo_vars=None):
    '''
    Returns the expected log likelihood of all images, as a
    `SensitiveFloatSnapshot` over the parameters of the active sources.

    *elbo_vars* is an `ElboIntermediateVariables` to use as scratch
    space; one is allocated if None.
    '''
    if elbo_vars is None:
        elbo_vars = ElboIntermediateVariables(
            ea.S, len(ea.active_sources), ids=ea.ids,
            calculate_derivs=calculate_derivs,
            calculate_hessian=calculate_hessian)
    assert(elbo_vars.S == ea.S)
    assert(elbo_vars.num_active == len(ea.active_sources))
    elbo_vars.setFlags(calculate_derivs, calculate_hessian)
    elbo_vars.clear()

    sbs = load_source_brightnesses(
        ea, calculate_derivs=elbo_vars.calculate_derivs,
        calculate_hessian=elbo_vars.calculate_hessian,
        dtype=elbo_vars.dtype)

    first_bad = None
    last = None
    for n, img in enumerate(ea.images):
        star_mcs, gal_mcs = load_bvn_mixtures(
            ea.S, ea.patches, ea.vp, ea.active_index, n,
            calculate_derivs=elbo_vars.calculate_derivs,
            calculate_hessian=elbo_vars.calculate_hessian, ids=ea.ids)

        # With one active source no pixel can be reached twice.
        already_visited = None
        if len(ea.active_sources) > 1:
            already_visited = np.zeros(img.shape, bool)

        npix = 0
        for s in ea.active_sources:
            p = ea.patches[s][n]
            hh, ww = p.getActivePixels(img.shape)
            for h, w in zip(hh, ww):
                if already_visited is not None:
                    if already_visited[h, w]:
                        continue
                    already_visited[h, w] = True

                add_pixel_term(ea, elbo_vars, n, h, w, star_mcs, gal_mcs,
                               sbs)
                npix += 1
                last = (n, int(h), int(w))
                if first_bad is None and not np.isfinite(elbo_vars.elbo.v):
                    first_bad = last
        logverb('Band', n, '(%s):' % img.name, npix, 'active pixels')

    try:
        assert_all_finite(elbo_vars.elbo)
    except RuntimeError as e:
        badparams = nonfinite_param_names(ea, elbo_vars.elbo)
        logmsg('Non-finite ELBO; first bad pixel (band, h, w):', first_bad,
               'last pixel:', last, 'bad parameters:', badparams)
        raise RuntimeError('%s; first non-finite at pixel (band, h, w) %s, '
                           'last pixel %s, parameters %s' %
                           (str(e), first_bad, last, ', '.join(badparams)))
    return elbo_vars.elbo.snapshot()


def nonfinite_param_names(ea, sf):
    '''
    Returns names like "source 2 r1[star]" for the entries of the
    gradient of *sf* that are not finite.
    '''
    if sf.d is None:
        return []
    names = ea.ids.getParamNames()
    P = ea.ids.size
    bad = []
    for i in np.flatnonzero(np.logical_not(np.isfinite(sf.d))):
        sa, p = divmod(int(i), P)
        bad.append('source %i %s' % (ea.active_sources[sa], names[p]))
    return bad


def elbo(ea, calculate_derivs=True, calculate_hessian=True,
         elbo_vars=None, kl=subtract_kl):
    '''
    Returns the ELBO: the expected log likelihood minus the KL
    divergence from the prior, as a `SensitiveFloatSnapshot`.

    *kl* is called as kl(ea, sf, calculate_derivs, calculate_hessian)
    and must update the sensitive float in place.
    '''
    lik = elbo_likelihood(ea, calculate_derivs=calculate_derivs,
                          calculate_hessian=calculate_hessian,
                          elbo_vars=elbo_vars)
    sf = lik.thaw()
    kl(ea, sf, calculate_derivs=calculate_derivs,
       calculate_hessian=calculate_derivs and calculate_hessian)
    return sf.snapshot()


def get_expected_pixel_brightness(ea, n, include_epsilon=True,
                                  elbo_vars=None):
    '''
    Returns the model image of band *n*: the expected photon count
    iota * E[G] at every pixel active for some source.  Other pixels
    hold the expected sky if *include_epsilon*, otherwise zero.
    '''
    if elbo_vars is None:
        elbo_vars = ElboIntermediateVariables(
            ea.S, len(ea.active_sources), ids=ea.ids,
            calculate_derivs=False, calculate_hessian=False)
    elbo_vars.setFlags(False, False)

    img = ea.images[n]
    sbs = load_source_brightnesses(ea, calculate_derivs=False,
                                   calculate_hessian=False,
                                   dtype=elbo_vars.dtype)
    star_mcs, gal_mcs = load_bvn_mixtures(
        ea.S, ea.patches, ea.vp, ea.active_index, n,
        calculate_derivs=False, calculate_hessian=False, ids=ea.ids)

    if include_epsilon:
        model = img.getExpectedSky()
    else:
        model = np.zeros(img.shape)

    visited = np.zeros(img.shape, bool)
    E_G = elbo_vars.E_G
    var_G = elbo_vars.var_G
    for s in range(ea.S):
        hh, ww = ea.patches[s][n].getActivePixels(img.shape)
        for h, w in zip(hh, ww):
            if visited[h, w]:
                continue
            visited[h, w] = True
            populate_fsm_vecs(elbo_vars.bvn_derivs, elbo_vars.fs0m_vec,
                              elbo_vars.fs1m_vec, False, False, ea.patches,
                              ea.active_index, ea.num_allowed_sd, n, h, w,
                              gal_mcs, star_mcs)
            E_G.clear(False)
            var_G.clear(False)
            for s2 in range(ea.S):
                if ea.patches[s2][n].isActivePixel(h, w):
                    accumulate_source_pixel_brightness(
                        elbo_vars, ea, E_G, var_G, elbo_vars.fs0m_vec[s2],
                        elbo_vars.fs1m_vec[s2], sbs[s2], img.b, s2, False)
            if include_epsilon:
                E_G.v += img.epsilon_mat[h, w]
            model[h, w] = img.iota_vec[h] * E_G.v
    return model
