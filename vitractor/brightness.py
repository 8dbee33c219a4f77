"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`brightness.py`
===============

Expected brightness of each source in each band.

A source's log brightness in the reference band is normal with mean
r1 and variance r2; the log ratio between adjacent bands j and j+1 is
normal with mean c1[j] and variance c2[j].  The log brightness in band
b is therefore normal too, and the brightness itself is log-normal, so
E[l] and E[l^2] are exponentials of linear functions of the brightness
parameters.
"""
import numpy as np

from vitractor.params import Ia
from vitractor.sensitive import SensitiveFloat


def get_color_signs(B, reference_band):
    '''
    Returns the B x (B-1) matrix of signs with which colour j enters
    the log brightness of band b.
    '''
    signs = np.zeros((B, B - 1))
    for b in range(B):
        if b > reference_band:
            signs[b, reference_band:b] = 1.
        elif b < reference_band:
            signs[b, b:reference_band] = -1.
    return signs


class SourceBrightness(object):
    '''
    E[l] and E[l^2] for one source.

    E_l_a[b][i] and E_ll_a[b][i] are sensitive floats over
    `BrightnessParams` for band b and model type i.
    '''
    def __init__(self, vs, ids, calculate_derivs=True,
                 calculate_hessian=True, dtype=np.float64):
        B = ids.B
        bids = ids.bright_ids
        signs = get_color_signs(B, ids.reference_band)

        self.E_l_a = []
        self.E_ll_a = []
        for b in range(B):
            E_l_b = []
            E_ll_b = []
            sign = signs[b]
            abs_sign = np.abs(sign)
            for i in range(Ia):
                theta = vs[ids.brightness_alignment[i]]

                # E[l] = exp(mean + var / 2)
                w1 = np.zeros(bids.size)
                w1[bids.r1] = 1.
                w1[bids.r2] = 0.5
                w1[bids.c1] = sign
                w1[bids.c2] = 0.5 * abs_sign

                # E[l^2] = exp(2 mean + 2 var)
                w2 = np.zeros(bids.size)
                w2[bids.r1] = 2.
                w2[bids.r2] = 2.
                w2[bids.c1] = 2. * sign
                w2[bids.c2] = 2. * abs_sign

                E_l_b.append(self._exp_linear(theta, w1, calculate_derivs,
                                              calculate_hessian, dtype))
                E_ll_b.append(self._exp_linear(theta, w2, calculate_derivs,
                                               calculate_hessian, dtype))
            self.E_l_a.append(E_l_b)
            self.E_ll_a.append(E_ll_b)

    @staticmethod
    def _exp_linear(theta, w, calculate_derivs, calculate_hessian, dtype):
        sf = SensitiveFloat(len(w), 1, has_gradient=calculate_derivs,
                            has_hessian=calculate_hessian, dtype=dtype)
        sf.v = np.exp(np.dot(w, theta))
        if calculate_derivs:
            sf.d[:] = sf.v * w
            if calculate_hessian:
                sf.h[:, :] = sf.v * np.outer(w, w)
        return sf


def load_source_brightnesses(ea, calculate_derivs=True,
                             calculate_hessian=True, dtype=np.float64):
    '''
    Returns a SourceBrightness for every source in *ea*; derivatives
    are only computed for active sources.
    '''
    sbs = []
    for s in range(ea.S):
        derivs = calculate_derivs and (s in ea.active_index)
        sbs.append(SourceBrightness(ea.vp[s], ea.ids, derivs,
                                    derivs and calculate_hessian,
                                    dtype=dtype))
    return sbs
