import unittest

import numpy as np

from vitractor.psf import NCircularGaussianPSF
from vitractor.image import Image
from vitractor.patch import *


class PatchTest(unittest.TestCase):
    def setUp(self):
        self.psf = NCircularGaussianPSF([1., 2.], [0.6, 0.4])

    def test_active_pixel_bounds(self):
        bitmap = np.ones((3, 4), bool)
        p = SkyPatch([0., 0.], 2., self.psf, np.eye(2), [0., 0.], (2, 5),
                     bitmap)
        self.assertTrue(p.isActivePixel(2, 5))
        # last row and last column are both inside
        self.assertTrue(p.isActivePixel(4, 8))
        self.assertTrue(p.isActivePixel(2, 8))
        self.assertTrue(p.isActivePixel(4, 5))
        self.assertFalse(p.isActivePixel(5, 8))
        self.assertFalse(p.isActivePixel(4, 9))
        self.assertFalse(p.isActivePixel(1, 5))
        self.assertFalse(p.isActivePixel(2, 4))
        self.assertFalse(p.isActivePixel(-100, -100))
        bitmap[1, 1] = False
        p = SkyPatch([0., 0.], 2., self.psf, np.eye(2), [0., 0.], (2, 5),
                     bitmap)
        self.assertFalse(p.isActivePixel(3, 6))

    def test_active_pixels_order(self):
        bitmap = np.array([[True, False], [True, True]])
        p = SkyPatch([0., 0.], 2., self.psf, np.eye(2), [0., 0.], (10, 20),
                     bitmap)
        hh, ww = p.getActivePixels()
        self.assertEqual(list(zip(hh, ww)), [(10, 20), (11, 20), (11, 21)])

    def test_active_pixels_inside_image(self):
        p = SkyPatch([0., 0.], 2., self.psf, np.eye(2), [0., 0.], (-1, -1),
                     np.ones((3, 3), bool))
        hh, ww = p.getActivePixels()
        self.assertEqual(len(hh), 9)
        hh, ww = p.getActivePixels((5, 5))
        self.assertEqual(list(zip(hh, ww)), [(0, 0), (1, 0), (0, 1), (1, 1)])
        hh, ww = p.getActivePixels((1, 1))
        self.assertEqual(list(zip(hh, ww)), [(0, 0)])

    def test_load_active_pixels_edge(self):
        pixels = np.zeros((5, 5)) + 4.
        # would be read through (-1, -1) if coordinates wrapped
        pixels[4, 4] = 1000.
        img = Image(pixels, 2, np.ones(5) * 2., 2.)
        p = SkyPatch([0., 0.], 2., self.psf, np.eye(2), [0., 0.], (-1, -1),
                     np.ones((3, 3), bool))
        load_active_pixels([img], [[p]], min_radius_pix=0.5)
        self.assertEqual(p.shape, (3, 3))
        self.assertFalse(p.active_pixel_bitmap[0, 0])
        self.assertFalse(np.any(p.active_pixel_bitmap[0, :]))
        self.assertFalse(np.any(p.active_pixel_bitmap[:, 0]))
        self.assertTrue(p.isActivePixel(0, 0))
        self.assertFalse(p.isActivePixel(1, 1))

        load_active_pixels([img], [[p]], min_radius_pix=5.,
                           exclude_nan=False)
        self.assertEqual(np.sum(p.active_pixel_bitmap), 4)

    def test_from_source(self):
        J = np.array([[2., 0.], [0., 2.]])
        p = SkyPatch.fromSource([1., 5.], (20, 30), self.psf, J,
                                radius_pix=3.)
        np.testing.assert_allclose(p.pixel_center, [2., 10.])
        # clipped at the top edge
        self.assertEqual(p.bitmap_corner, (0, 7))
        self.assertEqual(p.shape, (6, 7))
        self.assertTrue(np.all(p.active_pixel_bitmap))

        # off the image
        p = SkyPatch.fromSource([100., 100.], (20, 30), self.psf, J,
                                radius_pix=3.)
        self.assertEqual(np.sum(p.active_pixel_bitmap), 0)
        self.assertFalse(p.isActivePixel(19, 29))

        # default radius from the PSF
        p = SkyPatch.fromSource([5., 5.], (20, 30), self.psf, np.eye(2))
        self.assertEqual(p.radius, 10.)

    def test_linear_world_to_pix(self):
        J = np.array([[1., 0.5], [0., 2.]])
        pix = linear_world_to_pix(J, [1., 1.], [10., 20.], [2., 3.])
        np.testing.assert_allclose(pix, [12., 24.])

    def test_load_active_pixels(self):
        H, W = 30, 30
        pixels = np.zeros((H, W)) + 4.
        pixels[5, 25] = 100.
        pixels[15, 16] = np.nan
        img = Image(pixels, 2, np.ones(H) * 2., 2.)
        p = SkyPatch.fromSource([15., 15.], (H, W), self.psf, np.eye(2),
                                radius_pix=12.)
        load_active_pixels([img], [[p]], noise_fraction=0.5,
                           min_radius_pix=3.)
        self.assertTrue(p.isActivePixel(15, 15))
        self.assertTrue(p.isActivePixel(15, 18))
        self.assertFalse(p.isActivePixel(15, 19))
        # bright, far from the source
        self.assertTrue(p.isActivePixel(5, 25))
        self.assertFalse(p.isActivePixel(5, 24))
        # missing data
        self.assertFalse(p.isActivePixel(15, 16))

        load_active_pixels([img], [[p]], min_radius_pix=3.,
                           exclude_nan=False)
        self.assertTrue(p.isActivePixel(15, 16))


if __name__ == '__main__':
    unittest.main()
