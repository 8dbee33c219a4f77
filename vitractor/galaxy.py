"""
This file is part of the Tractor project.
Copyright 2011, 2012, 2013 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`galaxy.py`
================

Exponential and deVaucouleurs galaxy profiles, and the galaxy shape
ellipse.

The profiles are the multi-Gaussian approximations of Hogg & Lang
(2013): each is a mixture of concentric circular Gaussians with unit
effective radius, which are stretched by the galaxy shape and then
convolved with the PSF.
"""
import numpy as np

from vitractor.params import gal_shape_ids


class GalaxyComponent(object):
    '''
    One circular Gaussian of a galaxy profile, with weight `etaBar` and
    variance scale `nuBar`.
    '''
    def __init__(self, etaBar, nuBar):
        self.etaBar = etaBar
        self.nuBar = nuBar

    def __repr__(self):
        return 'GalaxyComponent(etaBar=%g, nuBar=%g)' % (
            self.etaBar, self.nuBar)


exp_amp = np.array([2.34853813e-03, 3.07995260e-02, 2.23364214e-01,
                    1.17949102e+00, 4.33873750e+00, 5.99820770e+00])
exp_var = np.array([1.20078965e-03, 8.84526493e-03, 3.91463084e-02,
                    1.39976817e-01, 4.60962500e-01, 1.50159566e+00])

dev_amp = np.array([4.26347421e-02, 2.40127790e-01, 6.85907678e-01,
                    1.51937244e+00, 2.83627123e+00, 4.46467945e+00,
                    5.72440032e+00, 5.60989621e+00])
dev_var = np.array([2.23759216e-04, 1.00220099e-03, 4.18731126e-03,
                    1.69432589e-02, 6.84850479e-02, 2.87207080e-01,
                    1.33320254e+00, 8.40215071e+00])


def get_galaxy_prototypes():
    '''
    Returns [dev components, exp components]: galaxy type 0 is the
    deVaucouleurs profile, type 1 the exponential.
    '''
    protos = []
    for amp, var in [(dev_amp, dev_var), (exp_amp, exp_var)]:
        amp = amp / np.sum(amp)
        protos.append([GalaxyComponent(a, v) for a, v in zip(amp, var)])
    return protos


galaxy_prototypes = get_galaxy_prototypes()

# Largest number of components in any galaxy profile.
n_gal_components = max(len(p) for p in galaxy_prototypes)


def get_bvn_cov(e_axis, e_angle, e_scale):
    '''
    Returns the 2x2 covariance of a galaxy with axis ratio *e_axis*,
    position angle *e_angle* (radians) and scale *e_scale* (pixels).

    Squish by the axis ratio, rotate, and scale.
    '''
    ct = np.cos(e_angle)
    st = np.sin(e_angle)
    R = np.array([[ct, -st], [st, ct]])
    W = e_scale * np.dot(np.diag([1., e_axis]), R.T)
    return np.dot(W.T, W)


class GalaxySigmaDerivs(object):
    '''
    Derivatives of the unique entries (S11, S12, S22) of a galaxy
    covariance with respect to the shape parameters (e_axis, e_angle,
    e_scale).

    - `j`: 3x3 jacobian, j[sig, shape]
    - `t`: 3x3x3 second derivatives, t[sig, shape1, shape2]
    '''
    def __init__(self, e_angle, e_axis, e_scale, XiXi,
                 calculate_tensor=True):
        cos_sin = np.cos(e_angle) * np.sin(e_angle)
        sin_sq = np.sin(e_angle)**2
        cos_sq = np.cos(e_angle)**2
        XiXi_vec = np.array([XiXi[0, 0], XiXi[0, 1], XiXi[1, 1]])

        iax = gal_shape_ids['e_axis']
        ian = gal_shape_ids['e_angle']
        isc = gal_shape_ids['e_scale']

        axis_dir = np.array([sin_sq, -cos_sin, cos_sq])
        angle_dir = np.array([2. * cos_sin, sin_sq - cos_sq, -2. * cos_sin])
        scale_sq = e_scale**2

        j = np.zeros((3, 3))
        j[:, iax] = 2. * e_axis * scale_sq * axis_dir
        j[:, ian] = scale_sq * (e_axis**2 - 1.) * angle_dir
        j[:, isc] = 2. * XiXi_vec / e_scale
        self.j = j

        self.t = np.zeros((3, 3, 3))
        if calculate_tensor:
            t = self.t
            t[:, isc, isc] = 2. * XiXi_vec / scale_sq
            t[:, isc, iax] = t[:, iax, isc] = 2. * j[:, iax] / e_scale
            t[:, isc, ian] = t[:, ian, isc] = 2. * j[:, ian] / e_scale

            t[:, ian, ian] = (2. * scale_sq * (e_axis**2 - 1.) *
                              np.array([cos_sq - sin_sq, 2. * cos_sin,
                                        sin_sq - cos_sq]))
            t[:, ian, iax] = t[:, iax, ian] = (2. * scale_sq * e_axis *
                                               angle_dir)
            t[:, iax, iax] = 2. * scale_sq * axis_dir

    def scale(self, factor):
        self.j *= factor
        self.t *= factor
