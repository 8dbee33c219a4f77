import unittest

import numpy as np

from vitractor.params import *


class ParamsTest(unittest.TestCase):

    def test_canonical(self):
        ids = CanonicalParams()
        self.assertEqual(ids.size, 32)
        self.assertEqual(len(ids), 32)
        self.assertEqual(ids.reference_band, 2)
        allids = np.hstack([ids.u, [ids.e_dev, ids.e_axis, ids.e_angle,
                                    ids.e_scale], ids.r1, ids.r2,
                            ids.c1.ravel(), ids.c2.ravel(), ids.a,
                            ids.k.ravel()])
        self.assertEqual(sorted(allids), list(range(32)))
        self.assertEqual(ids.c1.shape, (4, 2))
        self.assertEqual(ids.k.shape, (2, 2))
        self.assertEqual(ids.c1[1, 0], 11)
        self.assertEqual(ids.c1[0, 1], 14)
        self.assertEqual(ids.k[1, 0], 29)

    def test_alignment(self):
        ids = CanonicalParams()
        self.assertEqual(list(ids.shared_shape_ids), list(ids.u))
        self.assertEqual(list(ids.shape_alignment[0]), list(ids.u))
        self.assertEqual(list(ids.shape_alignment[1]), [0, 1, 2, 3, 4, 5])
        for i in range(Ia):
            ba = ids.brightness_alignment[i]
            bids = ids.bright_ids
            self.assertEqual(ba[bids.r1], ids.r1[i])
            self.assertEqual(ba[bids.r2], ids.r2[i])
            self.assertEqual(list(ba[bids.c1]), list(ids.c1[:, i]))
            self.assertEqual(list(ba[bids.c2]), list(ids.c2[:, i]))

    def test_other_sizes(self):
        ids = CanonicalParams(B=3, D=4)
        self.assertEqual(ids.size, 6 + 2 + 2 + 4 + 4 + 2 + 8)
        self.assertEqual(ids.reference_band, 1)
        self.assertEqual(ids.bright_ids.size, 6)

    def test_names(self):
        ids = CanonicalParams()
        names = ids.getParamNames()
        self.assertEqual(len(names), ids.size)
        self.assertEqual(names[0], 'u[0]')
        self.assertEqual(names[ids.r1[1]], 'r1[gal]')
        self.assertEqual(names[ids.c1[2, 1]], 'c1[2,gal]')
        self.assertEqual(names[ids.k[1, 0]], 'k[1,star]')
        self.assertEqual(GalaxyPosParams().getParamNames()[3], 'e_axis')

    def test_init_source(self):
        ids = CanonicalParams()
        vs = init_source([1., 2.], flux=10., colors=[0.1, 0.2, 0.3, 0.4],
                         is_star=False, gal_scale=3.)
        self.assertEqual(list(vs[ids.u]), [1., 2.])
        self.assertAlmostEqual(vs[ids.r1[0]], np.log(10.))
        self.assertEqual(vs[ids.e_scale], 3.)
        self.assertEqual(list(vs[ids.c1[:, 1]]), [0.1, 0.2, 0.3, 0.4])
        self.assertAlmostEqual(np.sum(vs[ids.a]), 1.)
        self.assertLess(vs[ids.a[0]], vs[ids.a[1]])


if __name__ == '__main__':
    unittest.main()
