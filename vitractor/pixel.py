"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`pixel.py`
==========

The contribution of one pixel to the ELBO.

At each pixel the brightness G is a sum over sources of
a * l * (light density), where the type indicator a, the brightness l
and the position are all random under the variational distribution.
E[G] and Var(G) are accumulated source by source
(`accumulate_source_pixel_brightness`), then the Poisson
log-likelihood of the observed count is bounded using a second-order
expansion of E[log G] (`add_elbo_log_term`).
"""
import numpy as np
from scipy.special import gammaln

from vitractor.params import Ia
from vitractor.sensitive import add_sources_sf, add_scaled_sfs, combine_sfs, \
    _symmetrize_upper
from vitractor.mixtures import populate_fsm_vecs


def calculate_source_pixel_brightness(elbo_vars, ea, E_G_s, var_G_s, fs0m,
                                      fs1m, sb, b, s, is_active_source):
    '''
    Sets *E_G_s* and *var_G_s* to the expectation and variance of
    source *s*'s brightness at this pixel in band *b*, given its light
    densities *fs0m* (star) and *fs1m* (galaxy) and its
    SourceBrightness *sb*.

    Derivatives are over the source's canonical parameters.
    '''
    ids = ea.ids
    vs = ea.vp[s]
    E_G2_s = elbo_vars.E_G2_s
    derivs = is_active_source and elbo_vars.calculate_derivs
    hessian = derivs and elbo_vars.calculate_hessian

    clear_hessian = elbo_vars.calculate_hessian and \
        elbo_vars.calculate_derivs
    E_G_s.clear(clear_hessian)
    E_G2_s.clear(clear_hessian)

    for i in range(Ia):
        fsm_i = fs0m if i == 0 else fs1m
        a_i = vs[ids.a[i]]
        E_l = sb.E_l_a[b][i]
        E_ll = sb.E_ll_a[b][i]
        f = fsm_i.v

        lf = E_l.v * f
        llff = E_ll.v * f * f

        E_G_s.v += a_i * lf
        E_G2_s.v += a_i * llff

        if not derivs:
            continue

        ia = ids.a[i]
        p0_shape = ids.shape_alignment[i]
        p0_bright = ids.brightness_alignment[i]
        fd = fsm_i.d

        E_G_s.d[ia] += lf
        E_G2_s.d[ia] += llff
        E_G_s.d[p0_shape] += E_l.v * a_i * fd
        E_G2_s.d[p0_shape] += E_ll.v * 2. * f * a_i * fd
        E_G_s.d[p0_bright] += a_i * f * E_l.d
        E_G2_s.d[p0_bright] += a_i * f * f * E_ll.d

        if not hessian:
            continue

        # Every block below is owned by type i alone and is assigned,
        # except the shared position block, which is overwritten with
        # the sum over types after this loop.
        bb = np.ix_(p0_bright, p0_bright)
        E_G_s.h[bb] = a_i * f * E_l.h
        E_G2_s.h[bb] = a_i * f * f * E_ll.h

        shape_shape = a_i * E_l.v * fsm_i.h
        shape_shape2 = 2. * a_i * E_ll.v * (f * fsm_i.h + np.outer(fd, fd))
        ss = np.ix_(p0_shape, p0_shape)
        E_G_s.h[ss] = shape_shape
        E_G2_s.h[ss] = shape_shape2

        shared = np.ix_(ids.shared_local[i], ids.shared_local[i])
        elbo_vars.E_G_s_hsub_vec[i].u_u[:, :] = shape_shape[shared]
        elbo_vars.E_G2_s_hsub_vec[i].u_u[:, :] = shape_shape2[shared]

        # (a, bright)
        E_G_s.h[p0_bright, ia] = f * E_l.d
        E_G2_s.h[p0_bright, ia] = f * f * E_ll.d
        E_G_s.h[ia, p0_bright] = E_G_s.h[p0_bright, ia]
        E_G2_s.h[ia, p0_bright] = E_G2_s.h[p0_bright, ia]

        # (a, shape)
        E_G_s.h[p0_shape, ia] = E_l.v * fd
        E_G2_s.h[p0_shape, ia] = E_ll.v * 2. * f * fd
        E_G_s.h[ia, p0_shape] = E_G_s.h[p0_shape, ia]
        E_G2_s.h[ia, p0_shape] = E_G2_s.h[p0_shape, ia]

        # (bright, shape)
        bs = np.ix_(p0_bright, p0_shape)
        sb_ = np.ix_(p0_shape, p0_bright)
        E_G_s.h[bs] = a_i * np.outer(E_l.d, fd)
        E_G2_s.h[bs] = 2. * a_i * f * np.outer(E_ll.d, fd)
        E_G_s.h[sb_] = E_G_s.h[bs].T
        E_G2_s.h[sb_] = E_G2_s.h[bs].T

    if hessian:
        uu = np.ix_(ids.shared_shape_ids, ids.shared_shape_ids)
        E_G_s.h[uu] = sum(hs.u_u for hs in elbo_vars.E_G_s_hsub_vec)
        E_G2_s.h[uu] = sum(hs.u_u for hs in elbo_vars.E_G2_s_hsub_vec)

    calculate_var_G_s(elbo_vars, E_G_s, E_G2_s, var_G_s, is_active_source)


def calculate_var_G_s(elbo_vars, E_G_s, E_G2_s, var_G_s, is_active_source):
    '''
    Sets *var_G_s* = E[G^2] - E[G]^2, with derivatives.
    '''
    derivs = is_active_source and elbo_vars.calculate_derivs
    var_G_s.clear(derivs and elbo_vars.calculate_hessian)

    var_G_s.v = E_G2_s.v - E_G_s.v * E_G_s.v
    if not derivs:
        return

    assert(len(var_G_s.d) == len(E_G2_s.d) == len(E_G_s.d))
    var_G_s.d[:] = E_G2_s.d - 2. * E_G_s.v * E_G_s.d

    if elbo_vars.calculate_hessian:
        h = var_G_s.h
        h[:, :] = E_G2_s.h - 2. * (E_G_s.v * E_G_s.h +
                                   np.outer(E_G_s.d, E_G_s.d))
        _symmetrize_upper(h)


def accumulate_source_pixel_brightness(elbo_vars, ea, E_G, var_G, fs0m,
                                       fs1m, sb, b, s, is_active_source):
    '''
    Adds source *s*'s brightness expectation and variance at this pixel
    into the pixel totals *E_G* and *var_G*.  Inactive sources add
    their values only.
    '''
    calculate_source_pixel_brightness(elbo_vars, ea, elbo_vars.E_G_s,
                                      elbo_vars.var_G_s, fs0m, fs1m, sb, b,
                                      s, is_active_source)
    if is_active_source:
        calculate_hessian = elbo_vars.calculate_hessian and \
            elbo_vars.calculate_derivs
        sa = ea.active_index[s]
        add_sources_sf(E_G, elbo_vars.E_G_s, sa, calculate_hessian)
        add_sources_sf(var_G, elbo_vars.var_G_s, sa, calculate_hessian)
    else:
        E_G.v += elbo_vars.E_G_s.v
        var_G.v += elbo_vars.var_G_s.v


def add_elbo_log_term(elbo_vars, E_G, var_G, elbo, x_nbm, iota):
    '''
    Adds x_nbm * (log(iota) + E[log G]) to *elbo*, where

        E[log G] ~= log E[G] - Var(G) / (2 E[G]^2)

    *x_nbm* is the photon count and *iota* the sensitivity at the
    pixel.
    '''
    E = E_G.v
    V = var_G.v
    log_term_value = np.log(E) - 0.5 * V / (E * E)

    elbo.v += x_nbm * (np.log(iota) + log_term_value)

    if not elbo_vars.calculate_derivs:
        return

    # As a function of (var_G, E_G).
    g = elbo_vars.combine_grad
    g[0] = -0.5 / (E * E)
    g[1] = 1. / E + V / (E ** 3)

    hh = elbo_vars.combine_hess
    if elbo_vars.calculate_hessian:
        hh[0, 0] = 0.
        hh[0, 1] = hh[1, 0] = 1. / (E ** 3)
        hh[1, 1] = -(1. / (E * E) + 3. * V / (E ** 4))

    log_term = elbo_vars.elbo_log_term
    combine_sfs(var_G, E_G, log_term, log_term_value, g, hh,
                elbo_vars.calculate_hessian)

    elbo.d += x_nbm * log_term.d
    if elbo_vars.calculate_hessian:
        elbo.h += x_nbm * log_term.h


def add_pixel_term(ea, elbo_vars, n, h, w, star_mcs, gal_mcs, sbs):
    '''
    Adds image pixel (h, w) of band *n* to elbo_vars.elbo, using every
    source whose footprint contains it.
    '''
    populate_fsm_vecs(elbo_vars.bvn_derivs, elbo_vars.fs0m_vec,
                      elbo_vars.fs1m_vec, elbo_vars.calculate_derivs,
                      elbo_vars.calculate_hessian, ea.patches,
                      ea.active_index, ea.num_allowed_sd, n, h, w,
                      gal_mcs, star_mcs)
    img = ea.images[n]
    clear_hessian = elbo_vars.calculate_hessian and \
        elbo_vars.calculate_derivs

    E_G = elbo_vars.E_G
    var_G = elbo_vars.var_G
    E_G.clear(clear_hessian)
    var_G.clear(clear_hessian)

    for s in range(ea.S):
        p = ea.patches[s][n]
        if p.isActivePixel(h, w):
            accumulate_source_pixel_brightness(
                elbo_vars, ea, E_G, var_G, elbo_vars.fs0m_vec[s],
                elbo_vars.fs1m_vec[s], sbs[s], img.b, s,
                s in ea.active_index)

    # The background has no derivatives.
    E_G.v += img.epsilon_mat[h, w]

    x_nbm = img.pixels[h, w]
    iota = img.iota_vec[h]
    add_elbo_log_term(elbo_vars, E_G, var_G, elbo_vars.elbo, x_nbm, iota)
    add_scaled_sfs(elbo_vars.elbo, E_G, -iota, clear_hessian)

    # log(x!) is constant in the parameters.
    elbo_vars.elbo.v -= gammaln(x_nbm + 1.)
