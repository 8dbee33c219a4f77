"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`image.py`
==========

One band of observed photon counts and its calibration.
"""
import numpy as np


class Image(object):
    '''
    An image: photon counts, the band, the per-row sensitivity and the
    background rate.

    - `pixels`: H x W photon counts; NaN marks missing data
    - `b`: band index
    - `iota_vec`: length-H expected counts per unit brightness
    - `epsilon_mat`: H x W background rate, in brightness units
    '''
    def __init__(self, pixels, b, iota_vec, epsilon_mat, name=None):
        self.pixels = np.asarray(pixels, dtype=float)
        assert(self.pixels.ndim == 2)
        H, W = self.pixels.shape
        self.b = int(b)
        self.iota_vec = np.asarray(iota_vec, dtype=float)
        if self.iota_vec.ndim == 0:
            self.iota_vec = np.zeros(H) + self.iota_vec
        self.epsilon_mat = np.asarray(epsilon_mat, dtype=float)
        if self.epsilon_mat.ndim == 0:
            self.epsilon_mat = np.zeros((H, W)) + self.epsilon_mat
        assert(self.iota_vec.shape == (H,))
        assert(self.epsilon_mat.shape == (H, W))
        self.name = name

    def __str__(self):
        return 'Image ' + str(self.name)

    def __repr__(self):
        return 'Image(band %i, %i x %i)' % ((self.b,) + self.shape)

    @property
    def shape(self):
        return self.pixels.shape

    @property
    def H(self):
        return self.pixels.shape[0]

    @property
    def W(self):
        return self.pixels.shape[1]

    def getExpectedSky(self):
        '''
        Returns the H x W expected background counts, iota * epsilon.
        '''
        return self.iota_vec[:, np.newaxis] * self.epsilon_mat
