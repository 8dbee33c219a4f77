"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`priors.py`
===========

Priors on source parameters, and the KL divergence from the
variational distribution to the prior.

For each model type i the prior is:

- type: categorical with probabilities `a`
- log reference-band brightness: normal(r_mean[i], r_var[i])
- colour component: categorical with probabilities `k[:, i]`
- colours given component d: multivariate normal(c_mean[:, d, i],
  c_cov[:, :, d, i])

and the KL divergence of a source is

    sum_i KL_a(i) + a_i (KL_r(i) + KL_k(i) + sum_d k_di KL_c(d, i))
"""
import numpy as np

from vitractor.params import Ia
from vitractor.sensitive import SensitiveFloat, multiply_sfs, \
    add_scaled_sfs, add_sources_sf


class PriorParams(object):
    '''
    Parameters of the prior.

    - `a`: (Ia,) type probabilities
    - `r_mean`, `r_var`: (Ia,) log-brightness mean and variance
    - `k`: (D, Ia) colour component probabilities
    - `c_mean`: (B-1, D, Ia) colour means
    - `c_cov`: (B-1, B-1, D, Ia) colour covariances
    '''
    def __init__(self, a=None, r_mean=None, r_var=None, k=None,
                 c_mean=None, c_cov=None, B=5, D=2):
        if a is None:
            a = np.ones(Ia) / Ia
        if r_mean is None:
            r_mean = np.zeros(Ia)
        if r_var is None:
            r_var = np.ones(Ia)
        if k is None:
            k = np.ones((D, Ia)) / D
        if c_mean is None:
            c_mean = np.zeros((B - 1, D, Ia))
        if c_cov is None:
            c_cov = np.zeros((B - 1, B - 1, D, Ia))
            for d in range(D):
                for i in range(Ia):
                    c_cov[:, :, d, i] = np.eye(B - 1)
        self.a = np.asarray(a, dtype=float)
        self.r_mean = np.asarray(r_mean, dtype=float)
        self.r_var = np.asarray(r_var, dtype=float)
        self.k = np.asarray(k, dtype=float)
        self.c_mean = np.asarray(c_mean, dtype=float)
        self.c_cov = np.asarray(c_cov, dtype=float)
        D = self.k.shape[0]
        B = self.c_mean.shape[0] + 1
        assert(self.a.shape == (Ia,))
        assert(self.r_mean.shape == (Ia,))
        assert(self.r_var.shape == (Ia,))
        assert(self.c_mean.shape == (B - 1, D, Ia))
        assert(self.c_cov.shape == (B - 1, B - 1, D, Ia))

    def __str__(self):
        return 'PriorParams: a=%s, r_mean=%s, r_var=%s' % (
            self.a, self.r_mean, self.r_var)


def _indicator(P, index, value):
    # The sensitive float of the single parameter *index*.
    sf = SensitiveFloat(P)
    sf.v = value
    sf.d[index] = 1.
    return sf


def _categorical_kl(P, ids, q, p):
    '''
    sum_j q_j (log q_j - log p_j) over parameters *ids*.
    '''
    sf = SensitiveFloat(P)
    sf.v = np.sum(q * (np.log(q) - np.log(p)))
    sf.d[ids] = np.log(q) - np.log(p) + 1.
    sf.h[ids, ids] = 1. / q
    return sf


def kl_a(vs, ids, prior, i):
    ''' KL of the type indicator, the a_i term. '''
    a = np.atleast_1d(vs[ids.a[i]])
    return _categorical_kl(ids.size, [ids.a[i]], a, prior.a[i:i + 1])


def kl_k(vs, ids, prior, i):
    ''' KL of the colour component indicator for type i. '''
    kid = ids.k[:, i]
    return _categorical_kl(ids.size, kid, vs[kid], prior.k[:, i])


def kl_r(vs, ids, prior, i):
    '''
    KL of the log reference-band brightness for type i: normal(r1, r2)
    against normal(r_mean, r_var).
    '''
    r1_id = ids.r1[i]
    r2_id = ids.r2[i]
    r1 = vs[r1_id]
    r2 = vs[r2_id]
    mu = prior.r_mean[i]
    var = prior.r_var[i]
    sf = SensitiveFloat(ids.size)
    sf.v = 0.5 * (r2 / var + (r1 - mu)**2 / var - 1. + np.log(var) -
                  np.log(r2))
    sf.d[r1_id] = (r1 - mu) / var
    sf.d[r2_id] = 0.5 * (1. / var - 1. / r2)
    sf.h[r1_id, r1_id] = 1. / var
    sf.h[r2_id, r2_id] = 0.5 / r2**2
    return sf


def kl_c(vs, ids, prior, d, i):
    '''
    KL of the colours for type i against prior component d:
    normal(c1, diag(c2)) against normal(c_mean, c_cov).
    '''
    c1_id = ids.c1[:, i]
    c2_id = ids.c2[:, i]
    c1 = vs[c1_id]
    c2 = vs[c2_id]
    mean = prior.c_mean[:, d, i]
    cov = prior.c_cov[:, :, d, i]
    icov = np.linalg.inv(cov)
    icov = 0.5 * (icov + icov.T)
    diff = c1 - mean
    logdet = np.linalg.slogdet(cov)[1]

    sf = SensitiveFloat(ids.size)
    sf.v = 0.5 * (np.sum(np.diag(icov) * c2) +
                  np.dot(diff, np.dot(icov, diff)) - len(c1) + logdet -
                  np.sum(np.log(c2)))
    sf.d[c1_id] = np.dot(icov, diff)
    sf.d[c2_id] = 0.5 * (np.diag(icov) - 1. / c2)
    sf.h[np.ix_(c1_id, c1_id)] = icov
    sf.h[c2_id, c2_id] = 0.5 / c2**2
    return sf


def get_source_kl(vs, ids, prior):
    '''
    Returns the KL divergence of one source as a sensitive float over
    its canonical parameters.
    '''
    kl = SensitiveFloat(ids.size)
    for i in range(Ia):
        inner = kl_r(vs, ids, prior, i)
        add_scaled_sfs(inner, kl_k(vs, ids, prior, i), 1.)
        for d in range(ids.D):
            k_di = _indicator(ids.size, ids.k[d, i], vs[ids.k[d, i]])
            add_scaled_sfs(inner, multiply_sfs(
                k_di, kl_c(vs, ids, prior, d, i)), 1.)
        a_i = _indicator(ids.size, ids.a[i], vs[ids.a[i]])
        add_scaled_sfs(kl, multiply_sfs(a_i, inner), 1.)
        add_scaled_sfs(kl, kl_a(vs, ids, prior, i), 1.)
    return kl


def subtract_kl(ea, elbo, calculate_derivs=True, calculate_hessian=True):
    '''
    Subtracts the KL divergence of every active source from *elbo*, in
    place.
    '''
    for sa, s in enumerate(ea.active_sources):
        kl = get_source_kl(ea.vp[s], ea.ids, ea.prior)
        if not calculate_derivs:
            elbo.v -= kl.v
            continue
        neg = SensitiveFloat(ea.ids.size, has_hessian=calculate_hessian,
                             dtype=elbo.dtype)
        add_scaled_sfs(neg, kl, -1., calculate_hessian)
        add_sources_sf(elbo, neg, sa, calculate_hessian)
