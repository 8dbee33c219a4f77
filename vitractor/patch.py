"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`patch.py`
==========

Per-source, per-band footprints: a rectangle of the image, its offset,
and a bitmap of the pixels that the source's light reaches.
"""
import numpy as np


def linear_world_to_pix(wcs_jacobian, world_loc, pix_loc, loc):
    '''
    Pixel location of world position *loc*, using the linear
    approximation to the WCS around (*world_loc*, *pix_loc*).
    '''
    return (np.asarray(pix_loc, dtype=float) +
            np.dot(wcs_jacobian, np.asarray(loc) - np.asarray(world_loc)))


class SkyPatch(object):
    '''
    The footprint of one source in one band.

    - `center`: world position about which the WCS is linearized
    - `radius`: radius of the footprint, in pixels
    - `psf`: the PSF at this location
    - `wcs_jacobian`: 2x2 d(pixel) / d(world)
    - `pixel_center`: pixel location of `center`
    - `bitmap_corner`: (h, w) image offset of bitmap element [0, 0]
    - `active_pixel_bitmap`: boolean array, True where the source
      contributes
    '''
    def __init__(self, center, radius, psf, wcs_jacobian, pixel_center,
                 bitmap_corner, active_pixel_bitmap):
        self.center = np.asarray(center, dtype=float).reshape(2)
        self.radius = float(radius)
        self.psf = psf
        self.wcs_jacobian = np.asarray(wcs_jacobian,
                                       dtype=float).reshape(2, 2)
        self.pixel_center = np.asarray(pixel_center, dtype=float).reshape(2)
        self.bitmap_corner = (int(bitmap_corner[0]), int(bitmap_corner[1]))
        self.active_pixel_bitmap = np.asarray(active_pixel_bitmap,
                                              dtype=bool)
        assert(self.active_pixel_bitmap.ndim == 2)

    @staticmethod
    def fromSource(world_pos, image_shape, psf, wcs_jacobian,
                   world_ref=(0., 0.), pix_ref=(0., 0.), radius_pix=None):
        '''
        Builds a square footprint around a source at world position
        *world_pos*, clipped to an image of shape (H, W).  The image WCS
        is the linear map through (*world_ref*, *pix_ref*) with
        jacobian *wcs_jacobian*.  *radius_pix* defaults to the PSF
        radius.  Every pixel of the box starts out active.
        '''
        pixel_center = linear_world_to_pix(wcs_jacobian, world_ref,
                                           pix_ref, world_pos)
        if radius_pix is None:
            radius_pix = psf.getRadius()
        H, W = image_shape
        h0 = max(0, int(np.floor(pixel_center[0] - radius_pix)))
        w0 = max(0, int(np.floor(pixel_center[1] - radius_pix)))
        h1 = min(H, int(np.ceil(pixel_center[0] + radius_pix)) + 1)
        w1 = min(W, int(np.ceil(pixel_center[1] + radius_pix)) + 1)
        # Sources off the image get an empty bitmap.
        bitmap = np.ones((max(0, h1 - h0), max(0, w1 - w0)), bool)
        return SkyPatch(world_pos, radius_pix, psf, wcs_jacobian,
                        pixel_center, (h0, w0), bitmap)

    def __str__(self):
        return ('SkyPatch: corner (%i, %i), %i x %i, %i active' %
                (self.bitmap_corner + self.active_pixel_bitmap.shape +
                 (np.sum(self.active_pixel_bitmap),)))

    @property
    def shape(self):
        return self.active_pixel_bitmap.shape

    def getSlice(self):
        '''
        Returns the (h, w) slices of the image covered by the bitmap.
        '''
        H2, W2 = self.active_pixel_bitmap.shape
        h0, w0 = self.bitmap_corner
        return (slice(h0, h0 + H2), slice(w0, w0 + W2))

    def isActivePixel(self, h, w):
        '''
        Is image pixel (h, w) active?  Coordinates outside the bitmap
        are inactive.
        '''
        h2 = h - self.bitmap_corner[0]
        w2 = w - self.bitmap_corner[1]
        H2, W2 = self.active_pixel_bitmap.shape
        return (0 <= h2 < H2 and 0 <= w2 < W2 and
                bool(self.active_pixel_bitmap[h2, w2]))

    def getActivePixels(self, image_shape=None):
        '''
        Returns (h, w) image coordinate arrays of the active pixels,
        w-major (all of column w before column w+1).

        If *image_shape* (H, W) is given, pixels falling outside the
        image are dropped.
        '''
        w2, h2 = np.nonzero(self.active_pixel_bitmap.T)
        hh = h2 + self.bitmap_corner[0]
        ww = w2 + self.bitmap_corner[1]
        if image_shape is not None:
            H, W = image_shape
            I = np.flatnonzero((hh >= 0) * (hh < H) * (ww >= 0) * (ww < W))
            hh = hh[I]
            ww = ww[I]
        return hh, ww


def load_active_pixels(images, patches, noise_fraction=0.5,
                       min_radius_pix=8.0, exclude_nan=True):
    '''
    Sets the active-pixel bitmap of every patch, in place.

    A pixel is active if it lies within *min_radius_pix* of the source,
    or if its sky-subtracted count is more than *noise_fraction* times
    the sky noise.  With *exclude_nan*, NaN pixels are never active.

    *patches* is indexed [source][band].  Bitmap pixels outside the
    image are never active.
    '''
    S = len(patches)
    for n, img in enumerate(images):
        sky = img.getExpectedSky()
        H, W = img.shape
        for s in range(S):
            p = patches[s][n]
            H2, W2 = p.active_pixel_bitmap.shape
            hh = np.arange(H2)[:, np.newaxis] + p.bitmap_corner[0]
            ww = np.arange(W2)[np.newaxis, :] + p.bitmap_corner[1]
            inside = (hh >= 0) * (hh < H) * (ww >= 0) * (ww < W)
            dist = np.hypot(hh - p.pixel_center[0], ww - p.pixel_center[1])
            hc = np.clip(hh, 0, H - 1)
            wc = np.clip(ww, 0, W - 1)
            pix = img.pixels[hc, wc]
            psky = sky[hc, wc]
            with np.errstate(invalid='ignore'):
                bright = (pix - psky) > noise_fraction * np.sqrt(psky)
            active = np.logical_or(bright, dist <= min_radius_pix)
            active = np.logical_and(active, inside)
            if exclude_nan:
                active[np.isnan(pix)] = False
            p.active_pixel_bitmap = active
