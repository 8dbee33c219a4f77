"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`sensitive.py`
==============

Sensitive floats: a scalar value together with its gradient and
Hessian with respect to a fixed parameter set.

A `SensitiveFloat` is sized for `local_P` parameters per source and
`local_S` sources; the gradient is a flat vector of length
`local_P * local_S` laid out source by source, and the Hessian is the
matching square matrix.  These objects are scratch accumulators:
allocate them once, `clear()` them, and add into them in place.
"""
import numpy as np


def _symmetrize_upper(h):
    '''
    Copies the strictly upper triangle of square *h* onto its lower
    triangle, in place.
    '''
    il = np.tril_indices(h.shape[0], -1)
    h[il] = h.T[il]


class SensitiveFloat(object):
    '''
    A value, its gradient and (optionally) its Hessian.

    - `v`: the value
    - `d`: gradient, length local_P * local_S
    - `h`: Hessian, shape (local_P * local_S,) * 2

    If `has_gradient` is False, `d` and `h` are both None.  If
    `has_hessian` is False only `h` is None.
    '''
    def __init__(self, local_P, local_S=1, has_gradient=True,
                 has_hessian=True, dtype=np.float64):
        self.local_P = local_P
        self.local_S = local_S
        self.dtype = dtype
        self.has_gradient = has_gradient
        self.has_hessian = has_gradient and has_hessian
        n = local_P * local_S
        self.v = dtype(0.)
        self.d = np.zeros(n, dtype) if has_gradient else None
        self.h = np.zeros((n, n), dtype) if self.has_hessian else None

    def __str__(self):
        return ('SensitiveFloat: v=%g, %i params x %i sources' %
                (self.v, self.local_P, self.local_S))

    def __repr__(self):
        return str(self)

    @property
    def size(self):
        return self.local_P * self.local_S

    # The value is kept in `dtype`, like the gradient and Hessian.
    @property
    def v(self):
        return self._v

    @v.setter
    def v(self, value):
        self._v = self.dtype(value)

    def clear(self, clear_hessian=True):
        '''
        Zeroes the value and gradient; the Hessian too if
        *clear_hessian*, otherwise it is left untouched.
        '''
        self.v = self.dtype(0.)
        if self.has_gradient:
            self.d[:] = 0.
        if clear_hessian and self.has_hessian:
            self.h[:, :] = 0.

    def snapshot(self):
        '''
        Returns a read-only copy that does not alias this accumulator.
        '''
        return SensitiveFloatSnapshot(self)

    def source_slice(self, sa):
        '''
        The slice of the gradient that belongs to source *sa*.
        '''
        return slice(sa * self.local_P, (sa + 1) * self.local_P)

    def add_scaled(self, other, scale, with_hessian=True):
        add_scaled_sfs(self, other, scale, with_hessian)

    def add_from_subset(self, other, index_map, with_hessian=True):
        '''
        Adds *other*'s value, gradient and Hessian into the rows and
        columns *index_map* of this sensitive float.
        '''
        index_map = np.asarray(index_map, dtype=int)
        if len(index_map) != other.size:
            raise RuntimeError('Dimensions %i and %i do not match' %
                               (len(index_map), other.size))
        self.v += other.v
        if other.has_gradient and self.has_gradient:
            self.d[index_map] += other.d
        if with_hessian and other.has_hessian and self.has_hessian:
            self.h[np.ix_(index_map, index_map)] += other.h


class SensitiveFloatSnapshot(object):
    '''
    The value of a sensitive float at one point in time.  Arrays are
    copies and are marked read-only.  Use `thaw()` for a mutable copy.
    '''
    def __init__(self, sf):
        self.local_P = sf.local_P
        self.local_S = sf.local_S
        self.dtype = sf.dtype
        self.has_gradient = sf.has_gradient
        self.has_hessian = sf.has_hessian
        self.v = sf.v
        self.d = None
        self.h = None
        if sf.has_gradient:
            self.d = sf.d.copy()
            self.d.flags.writeable = False
        if sf.has_hessian:
            self.h = sf.h.copy()
            self.h.flags.writeable = False

    def __str__(self):
        return ('SensitiveFloatSnapshot: v=%g, %i params x %i sources' %
                (self.v, self.local_P, self.local_S))

    def __repr__(self):
        return str(self)

    @property
    def size(self):
        return self.local_P * self.local_S

    def thaw(self):
        sf = SensitiveFloat(self.local_P, self.local_S,
                            has_gradient=self.has_gradient,
                            has_hessian=self.has_hessian, dtype=self.dtype)
        sf.v = self.v
        if self.has_gradient:
            sf.d[:] = self.d
        if self.has_hessian:
            sf.h[:, :] = self.h
        return sf


def _check_sizes(sf1, sf2):
    if sf1.size != sf2.size:
        raise RuntimeError('Dimensions %i and %i do not match' %
                           (sf1.size, sf2.size))


def add_scaled_sfs(sf1, sf2, scale, calculate_hessian=True):
    '''
    sf1 += scale * sf2, in place.
    '''
    _check_sizes(sf1, sf2)
    sf1.v += scale * sf2.v
    if sf1.has_gradient and sf2.has_gradient:
        sf1.d += scale * sf2.d
    if calculate_hessian and sf1.has_hessian and sf2.has_hessian:
        sf1.h += scale * sf2.h


def add_sources_sf(sf_all, sf_s, sa, calculate_hessian=True):
    '''
    Adds a single-source sensitive float *sf_s* into the block of the
    multi-source *sf_all* that belongs to active source *sa*.
    '''
    if sf_s.local_P != sf_all.local_P or sf_s.local_S != 1:
        raise RuntimeError('Dimensions %i and %i do not match' %
                           (sf_s.local_P, sf_all.local_P))
    if not 0 <= sa < sf_all.local_S:
        raise RuntimeError('Source %i is not in a sensitive float with '
                           '%i sources' % (sa, sf_all.local_S))
    sf_all.v += sf_s.v
    sl = sf_all.source_slice(sa)
    sf_all.d[sl] += sf_s.d
    if calculate_hessian:
        sf_all.h[sl, sl] += sf_s.h


def combine_sfs(sf1, sf2, sf_result, v, g, h, calculate_hessian=True):
    '''
    Sets *sf_result* to f(sf1, sf2) by the chain rule, where f has
    value *v*, gradient *g* (length 2) and Hessian *h* (2x2) with
    respect to (sf1.v, sf2.v).
    '''
    _check_sizes(sf1, sf2)
    _check_sizes(sf1, sf_result)
    if calculate_hessian:
        d1 = sf1.d
        d2 = sf2.d
        hr = sf_result.h
        hr[:, :] = g[0] * sf1.h + g[1] * sf2.h
        hr += h[0, 0] * np.outer(d1, d1)
        hr += h[1, 1] * np.outer(d2, d2)
        hr += h[0, 1] * (np.outer(d1, d2) + np.outer(d2, d1))
        _symmetrize_upper(hr)
    sf_result.d[:] = g[0] * sf1.d + g[1] * sf2.d
    sf_result.v = v


def multiply_sfs(sf1, sf2, calculate_hessian=True):
    '''
    Returns a new sensitive float for the product sf1 * sf2.
    '''
    _check_sizes(sf1, sf2)
    prod = SensitiveFloat(sf1.local_P, sf1.local_S,
                          has_hessian=calculate_hessian, dtype=sf1.dtype)
    g = np.array([sf2.v, sf1.v])
    h = np.array([[0., 1.], [1., 0.]])
    combine_sfs(sf1, sf2, prod, sf1.v * sf2.v, g, h, calculate_hessian)
    return prod


def assert_all_finite(sf, context=''):
    '''
    Raises RuntimeError if the value, gradient or Hessian of *sf*
    contain a NaN or infinity.
    '''
    bad = []
    if not np.isfinite(sf.v):
        bad.append('value')
    if sf.d is not None and not np.all(np.isfinite(sf.d)):
        bad.append('gradient')
    if sf.h is not None and not np.all(np.isfinite(sf.h)):
        bad.append('Hessian')
    if len(bad):
        raise RuntimeError('Non-finite %s in sensitive float %s' %
                           (', '.join(bad), context))
