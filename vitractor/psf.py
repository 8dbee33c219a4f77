"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`psf.py`
========

Point-spread functions represented as mixtures of 2-D Gaussians.
"""
import numpy as np

from vitractor import ducks


class PsfComponent(object):
    '''
    One Gaussian component of a PSF: weight `alphaBar`, mean offset
    `xiBar` (pixels) and covariance `tauBar` (pixels**2).
    '''
    def __init__(self, alphaBar, xiBar, tauBar):
        self.alphaBar = float(alphaBar)
        self.xiBar = np.asarray(xiBar, dtype=float).reshape(2)
        self.tauBar = np.asarray(tauBar, dtype=float).reshape(2, 2)

    def __repr__(self):
        return ('PsfComponent(alphaBar=%g, xiBar=[%g, %g], '
                'tauBar=[[%g, %g], [%g, %g]])' %
                ((self.alphaBar,) + tuple(self.xiBar) +
                 tuple(self.tauBar.ravel())))


class GaussianMixturePSF(ducks.PSF):
    '''
    A PSF model that is a mixture of general 2-D Gaussians
    (characterized by amplitude, mean, covariance)
    '''
    def __init__(self, amp, mean, var):
        '''
        GaussianMixturePSF(amp, mean, var)

        amp:  np array (size K) of Gaussian amplitudes
        mean: np array (size K,2) of means
        var:  np array (size K,2,2) of variances
        '''
        amp = np.atleast_1d(np.asarray(amp, dtype=float))
        mean = np.asarray(mean, dtype=float).reshape(-1, 2)
        var = np.asarray(var, dtype=float).reshape(-1, 2, 2)
        K = len(amp)
        assert(mean.shape == (K, 2))
        assert(var.shape == (K, 2, 2))
        self.amp = amp
        self.mean = mean
        self.var = var

    @property
    def K(self):
        return len(self.amp)

    def __str__(self):
        return 'GaussianMixturePSF: %i components, amps %s' % (
            self.K, ', '.join('%.3g' % a for a in self.amp))

    def copy(self):
        return GaussianMixturePSF(self.amp.copy(), self.mean.copy(),
                                  self.var.copy())

    def getComponents(self):
        return [PsfComponent(a, m, v)
                for a, m, v in zip(self.amp, self.mean, self.var)]

    def getRadius(self, nsigma=5.):
        meig = max([max(abs(np.linalg.eigvalsh(v))) for v in self.var])
        return nsigma * np.sqrt(meig)


class NCircularGaussianPSF(GaussianMixturePSF):
    '''
    A PSF model using N concentric, circular Gaussians.
    '''
    def __init__(self, sigmas, weights):
        sigmas = np.atleast_1d(np.asarray(sigmas, dtype=float))
        weights = np.atleast_1d(np.asarray(weights, dtype=float))
        assert(len(sigmas) == len(weights))
        K = len(sigmas)
        var = np.zeros((K, 2, 2))
        var[:, 0, 0] = var[:, 1, 1] = sigmas**2
        super(NCircularGaussianPSF, self).__init__(
            weights, np.zeros((K, 2)), var)
        self.sigmas = sigmas

    def __str__(self):
        return 'NCircularGaussianPSF: sigmas [ %s ], weights [ %s ]' % (
            ', '.join('%.3f' % s for s in self.sigmas),
            ', '.join('%.3f' % w for w in self.amp))
