"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`ducks.py`
===========

Duck-type definitions of the collaborators used by the ELBO engine.

Only `PSF` is used as a base class; the rest is here for
documentation purposes.
"""


class PSF(object):
    '''
    Duck-type definition of a point-spread function, expressed as a
    mixture of 2-D Gaussians in pixel space.
    '''

    @property
    def K(self):
        ''' Number of mixture components. '''
        return 0

    def getComponents(self):
        '''
        Returns a list of `PsfComponent`s (alphaBar, xiBar, tauBar).
        '''
        return []

    def getRadius(self, nsigma=5.):
        '''
        Returns the radius, in pixels, beyond which the PSF is
        negligible.
        '''
        pass


class Image(object):
    '''
    Duck-type definition of one band's image.
    '''
    # 2-D photon counts, indexed [h, w]
    pixels = None
    # band index, 0 to B-1
    b = 0
    # per-row sensitivity (expected counts per unit brightness)
    iota_vec = None
    # 2-D background rate, indexed [h, w]
    epsilon_mat = None

    @property
    def shape(self):
        return (0, 0)


class Patch(object):
    '''
    Duck-type definition of a source's footprint in one band.
    '''
    # (h, w) image coordinates of bitmap element [0, 0]
    bitmap_corner = (0, 0)
    # boolean array; True where the source's light matters
    active_pixel_bitmap = None
    psf = None
    # 2x2 jacobian d(pixel) / d(world)
    wcs_jacobian = None
    # world position and its pixel location, the linearization point
    center = None
    pixel_center = None

    def isActivePixel(self, h, w):
        '''
        Is image pixel (h, w) active for this source?  Returns False
        for pixels outside the bitmap.
        '''
        return False


class SourceBrightness(object):
    '''
    Duck-type definition of a source's expected brightness.

    E_l_a[b][i] and E_ll_a[b][i] are sensitive floats over
    `BrightnessParams` giving E[l] and E[l^2] for band b and model
    type i.
    '''
    E_l_a = None
    E_ll_a = None


def subtract_kl(ea, elbo, calculate_derivs=True, calculate_hessian=True):
    '''
    Duck-type definition of a prior term: subtracts the KL divergence
    between the variational distribution and the prior from the
    sensitive float *elbo*, in place.
    '''
    pass
