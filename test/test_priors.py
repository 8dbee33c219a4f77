import unittest

import numpy as np

from vitractor.params import CanonicalParams, init_source
from vitractor.priors import *

ids = CanonicalParams()


class KLTest(unittest.TestCase):
    def setUp(self):
        rng = np.random.RandomState(3)
        c_cov = np.zeros((4, 4, 2, 2))
        for d in range(2):
            for i in range(2):
                A = rng.normal(size=(4, 4))
                c_cov[:, :, d, i] = np.dot(A, A.T) + np.eye(4)
        self.prior = PriorParams(a=[0.3, 0.7], r_mean=[1., 2.],
                                 r_var=[0.5, 2.], k=[[0.4, 0.6], [0.6, 0.4]],
                                 c_mean=rng.normal(size=(4, 2, 2)),
                                 c_cov=c_cov)
        vs = init_source([1., 1.], flux=3., colors=[0.1, 0.2, -0.3, 0.4],
                         is_star=False)
        vs[ids.r2] = [0.3, 0.2]
        vs[ids.c2[:, 0]] = [0.1, 0.2, 0.3, 0.4]
        vs[ids.k[:, 1]] = [0.3, 0.7]
        self.vs = vs

    def test_zero_at_prior(self):
        prior = PriorParams()
        vs = self.vs.copy()
        vs[ids.a] = prior.a
        vs[ids.r1] = prior.r_mean
        vs[ids.r2] = prior.r_var
        vs[ids.k] = prior.k
        vs[ids.c1] = 0.
        vs[ids.c2] = 1.
        kl = get_source_kl(vs, ids, prior)
        self.assertAlmostEqual(kl.v, 0.)
        self.assertGreater(get_source_kl(self.vs, ids, prior).v, 0.)

    def test_kl_r(self):
        sf = kl_r(self.vs, ids, self.prior, 1)
        r1, r2 = self.vs[ids.r1[1]], self.vs[ids.r2[1]]
        mu, var = 2., 2.
        expect = (0.5 * np.log(var / r2) + (r2 + (r1 - mu)**2) / (2. * var) -
                  0.5)
        self.assertAlmostEqual(sf.v, expect)

    def test_fd(self):
        kl = get_source_kl(self.vs, ids, self.prior)
        self.assertTrue(np.all(kl.h == kl.h.T))
        eps = 1e-6
        for p in range(ids.size):
            vp = self.vs.copy()
            vm = self.vs.copy()
            vp[p] += eps
            vm[p] -= eps
            kp = get_source_kl(vp, ids, self.prior)
            km = get_source_kl(vm, ids, self.prior)
            self.assertAlmostEqual(kl.d[p], (kp.v - km.v) / (2. * eps),
                                   places=5, msg=ids.getParamNames()[p])
            np.testing.assert_allclose(kl.h[:, p], (kp.d - km.d) / (2. * eps),
                                       rtol=1e-5, atol=1e-6,
                                       err_msg=ids.getParamNames()[p])

    def test_subtract(self):
        class Args(object):
            pass
        ea = Args()
        ea.ids = ids
        ea.prior = self.prior
        ea.vp = [self.vs, self.vs * 0.5]
        ea.active_sources = [1]
        ea.vp[1][ids.u] = 0.
        sf = SensitiveFloat(ids.size)
        subtract_kl(ea, sf)
        kl = get_source_kl(ea.vp[1], ids, self.prior)
        self.assertAlmostEqual(sf.v, -kl.v)
        np.testing.assert_allclose(sf.d, -kl.d)
        np.testing.assert_allclose(sf.h, -kl.h)

        sf = SensitiveFloat(ids.size)
        subtract_kl(ea, sf, calculate_derivs=False)
        self.assertAlmostEqual(sf.v, -kl.v)
        self.assertTrue(np.all(sf.d == 0))


if __name__ == '__main__':
    unittest.main()
