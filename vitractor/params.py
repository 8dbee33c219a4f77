"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`params.py`
===========

Static index tables for the per-source parameter vector.

Each source is described by a flat "canonical" vector of variational
parameters.  The tables here say where each named parameter lives in
that vector, and how the smaller parameter sets used while rendering a
single pixel (star position, galaxy position and shape, brightness)
line up with it.
"""
import numpy as np

# Number of model types: stars (0) and galaxies (1).
Ia = 2

type_names = ['star', 'gal']


class ParamSet(object):
    '''
    A fixed, named set of parameter indices.

    Subclasses fill in `size` and set attributes (ints or int arrays)
    naming the location of each parameter.
    '''
    size = 0

    def __len__(self):
        return self.size

    def getParamNames(self):
        return ['p%i' % i for i in range(self.size)]


class StarPosParams(ParamSet):
    '''
    Parameters that the star light density depends on: position only.
    '''
    def __init__(self):
        self.u = np.array([0, 1])
        self.size = 2

    def getParamNames(self):
        return ['u[0]', 'u[1]']


class GalaxyPosParams(ParamSet):
    '''
    Parameters that the galaxy light density depends on.
    '''
    def __init__(self):
        self.u = np.array([0, 1])
        self.e_dev = 2
        self.e_axis = 3
        self.e_angle = 4
        self.e_scale = 5
        self.size = 6

    def getParamNames(self):
        return ['u[0]', 'u[1]', 'e_dev', 'e_axis', 'e_angle', 'e_scale']


# Order of the galaxy shape parameters used by GalaxySigmaDerivs.
gal_shape_ids = dict(e_axis=0, e_angle=1, e_scale=2)


class BrightnessParams(ParamSet):
    '''
    Parameters of one type's brightness distribution: r1, r2, then the
    B-1 colour means and B-1 colour variances.
    '''
    def __init__(self, B=5):
        self.B = B
        self.r1 = 0
        self.r2 = 1
        self.c1 = np.arange(2, B + 1)
        self.c2 = np.arange(B + 1, 2 * B)
        self.size = 2 * B

    def getParamNames(self):
        return (['r1', 'r2'] +
                ['c1[%i]' % j for j in range(self.B - 1)] +
                ['c2[%i]' % j for j in range(self.B - 1)])


class CanonicalParams(ParamSet):
    '''
    The full per-source parameter vector.

    - `u`: position (2)
    - `e_dev`, `e_axis`, `e_angle`, `e_scale`: galaxy shape
    - `r1`, `r2`: mean and variance of log reference-band brightness,
      one per type
    - `c1`, `c2`: colour means and variances, (B-1) x Ia
    - `a`: type probabilities, one per type
    - `k`: prior colour-component responsibilities, D x Ia

    Besides the locations, the table records how the per-type shape and
    brightness parameter sets map into the canonical vector, and which
    canonical parameters are shared between the types' shape sets.
    Blocks of a per-source Hessian indexed only by unshared parameters
    may be assigned type by type; blocks indexed by shared parameters
    must be summed over types.
    '''
    def __init__(self, B=5, D=2):
        self.B = B
        self.D = D
        self.reference_band = B // 2

        self.u = np.array([0, 1])
        self.e_dev = 2
        self.e_axis = 3
        self.e_angle = 4
        self.e_scale = 5
        i0 = 6
        self.r1 = np.arange(i0, i0 + Ia)
        i0 += Ia
        self.r2 = np.arange(i0, i0 + Ia)
        i0 += Ia
        nc = (B - 1) * Ia
        # column-major: c1[b, i]
        self.c1 = np.arange(i0, i0 + nc).reshape(Ia, B - 1).T
        i0 += nc
        self.c2 = np.arange(i0, i0 + nc).reshape(Ia, B - 1).T
        i0 += nc
        self.a = np.arange(i0, i0 + Ia)
        i0 += Ia
        self.k = np.arange(i0, i0 + D * Ia).reshape(Ia, D).T
        i0 += D * Ia
        self.size = i0

        self.star_ids = StarPosParams()
        self.gal_ids = GalaxyPosParams()
        self.bright_ids = BrightnessParams(B)

        self.shape_alignment = [
            self.u.copy(),
            np.array([self.u[0], self.u[1], self.e_dev, self.e_axis,
                      self.e_angle, self.e_scale])]
        self.brightness_alignment = [
            np.hstack([[self.r1[i], self.r2[i]], self.c1[:, i],
                       self.c2[:, i]]).astype(int)
            for i in range(Ia)]

        shared = set(self.shape_alignment[0])
        for sa in self.shape_alignment[1:]:
            shared &= set(sa)
        self.shared_shape_ids = np.array(sorted(shared), dtype=int)
        # Position of the shared ids within each type's local shape set.
        self.shared_local = [
            np.array([list(sa).index(j) for j in self.shared_shape_ids])
            for sa in self.shape_alignment]
        self._check_blocks()

    def _check_blocks(self):
        # Only the position block may be written by both types.
        assert(list(self.shared_shape_ids) == list(self.u))
        owned = [set(self.shape_alignment[i]) - set(self.shared_shape_ids)
                 for i in range(Ia)]
        for i in range(Ia):
            owned[i] |= set(self.brightness_alignment[i])
            owned[i].add(self.a[i])
        for i in range(Ia):
            for j in range(i + 1, Ia):
                assert(len(owned[i] & owned[j]) == 0)
        assert(len(self.shape_alignment[0]) == self.star_ids.size)
        assert(len(self.shape_alignment[1]) == self.gal_ids.size)
        for ba in self.brightness_alignment:
            assert(len(ba) == self.bright_ids.size)

    def getParamNames(self):
        names = [None] * self.size
        names[self.u[0]] = 'u[0]'
        names[self.u[1]] = 'u[1]'
        for nm in ['e_dev', 'e_axis', 'e_angle', 'e_scale']:
            names[getattr(self, nm)] = nm
        for i in range(Ia):
            t = type_names[i]
            names[self.r1[i]] = 'r1[%s]' % t
            names[self.r2[i]] = 'r2[%s]' % t
            names[self.a[i]] = 'a[%s]' % t
            for b in range(self.B - 1):
                names[self.c1[b, i]] = 'c1[%i,%s]' % (b, t)
                names[self.c2[b, i]] = 'c2[%i,%s]' % (b, t)
            for d in range(self.D):
                names[self.k[d, i]] = 'k[%i,%s]' % (d, t)
        return names


def init_source(pos, flux=1., colors=None, is_star=True,
                gal_frac_dev=0.5, gal_ab=0.8, gal_angle=0.,
                gal_scale=1., ids=None):
    '''
    Returns an initial canonical parameter vector for a source.

    *pos*: world position; *flux*: reference-band brightness;
    *colors*: B-1 log flux ratios between adjacent bands (default 0).
    '''
    if ids is None:
        ids = CanonicalParams()
    vs = np.zeros(ids.size)
    vs[ids.u] = pos
    vs[ids.e_dev] = gal_frac_dev
    vs[ids.e_axis] = gal_ab
    vs[ids.e_angle] = gal_angle
    vs[ids.e_scale] = gal_scale
    vs[ids.r1] = np.log(max(flux, 1e-8))
    vs[ids.r2] = 1e-3
    if colors is None:
        colors = np.zeros(ids.B - 1)
    for i in range(Ia):
        vs[ids.c1[:, i]] = colors
    vs[ids.c2] = 1e-2
    pstar = 0.8 if is_star else 0.2
    vs[ids.a] = [pstar, 1. - pstar]
    vs[ids.k] = 1. / ids.D
    return vs
