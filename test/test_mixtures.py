import unittest

import numpy as np
from scipy.stats import multivariate_normal

from vitractor import *
from vitractor.mixtures import *

ids = CanonicalParams()


def make_psf():
    return GaussianMixturePSF(
        [0.7, 0.3], [[0., 0.], [0.2, -0.1]],
        [[[1.5, 0.2], [0.2, 1.]], [[3., -0.4], [-0.4, 2.5]]])


class MixtureTest(unittest.TestCase):
    def setUp(self):
        self.J = np.array([[0.9, 0.1], [-0.2, 1.1]])
        self.vs = init_source([4.3, 5.1], is_star=False, gal_frac_dev=0.3,
                              gal_ab=0.6, gal_angle=0.7, gal_scale=1.5)
        self.patch = SkyPatch.fromSource(self.vs[ids.u], (12, 12),
                                         make_psf(), self.J, radius_pix=5)
        self.x = np.array([5., 4.])

    def densities(self, vs, calculate_hessian=True, num_allowed_sd=np.inf):
        star_mcs, gal_mcs = load_bvn_mixtures(
            1, [[self.patch]], [vs], [0], 0, calculate_derivs=True,
            calculate_hessian=calculate_hessian, ids=ids)
        bvn = BivariateNormalDerivatives()
        fs0m = SensitiveFloat(ids.star_ids.size)
        fs1m = SensitiveFloat(ids.gal_ids.size)
        populate_fsm(bvn, fs0m, fs1m, True, calculate_hessian, 0, self.x,
                     True, num_allowed_sd, self.patch.wcs_jacobian, gal_mcs,
                     star_mcs)
        return fs0m, fs1m

    def test_bvn_pdf(self):
        mean = np.array([1., 2.])
        cov = np.array([[2., 0.3], [0.3, 0.5]])
        bmc = BvnComponent(mean, cov, 0.4)
        bvn = BivariateNormalDerivatives()
        x = np.array([1.7, 1.2])
        f = eval_bvn_pdf(bvn, bmc, x)
        self.assertAlmostEqual(f, 0.4 * multivariate_normal(mean, cov).pdf(x),
                               places=12)
        np.testing.assert_allclose(bvn.py,
                                   np.linalg.solve(cov, x - mean))
        self.assertAlmostEqual(bmc.major_sd**2,
                               np.max(np.linalg.eigvalsh(cov)))

    def test_sigma_derivs(self):
        # derivatives of log f with respect to (S11, S12, S22)
        mean = np.array([0.5, -0.3])
        cov = np.array([[2., 0.3], [0.3, 0.5]])
        x = np.array([1.7, 1.2])

        def logf(c):
            return multivariate_normal(mean, c).logpdf(x)

        bmc = BvnComponent(mean, cov, 1.)
        bvn = BivariateNormalDerivatives()
        eval_bvn_pdf(bvn, bmc, x)
        get_bvn_derivs(bvn, bmc, True, True)

        eps = 1e-6
        basis = [np.array([[1., 0.], [0., 0.]]),
                 np.array([[0., 1.], [1., 0.]]),
                 np.array([[0., 0.], [0., 1.]])]
        for s, E in enumerate(basis):
            fd = (logf(cov + eps * E) - logf(cov - eps * E)) / (2. * eps)
            self.assertAlmostEqual(bvn.bvn_sig_d[s], fd, places=6)

        # second derivatives, from the analytic first derivatives
        for t, E in enumerate(basis):
            grads = []
            for sign in [1., -1.]:
                b2 = BvnComponent(mean, cov + sign * eps * E, 1.)
                d2 = BivariateNormalDerivatives()
                eval_bvn_pdf(d2, b2, x)
                get_bvn_derivs(d2, b2, True, False)
                grads.append((d2.bvn_sig_d.copy(), d2.bvn_x_d.copy()))
            fd_sig = (grads[0][0] - grads[1][0]) / (2. * eps)
            fd_x = (grads[0][1] - grads[1][1]) / (2. * eps)
            np.testing.assert_allclose(bvn.bvn_sigsig_h[:, t], fd_sig,
                                       rtol=1e-5, atol=1e-8)
            np.testing.assert_allclose(bvn.bvn_xsig_h[:, t], fd_x,
                                       rtol=1e-5, atol=1e-8)
        self.assertTrue(np.all(bvn.bvn_sigsig_h == bvn.bvn_sigsig_h.T))

    def check_fd(self, which, alignment):
        fs = self.densities(self.vs)[which]
        self.assertGreater(fs.v, 1e-4)
        eps = 1e-6
        for l, p in enumerate(alignment):
            vp = self.vs.copy()
            vm = self.vs.copy()
            vp[p] += eps
            vm[p] -= eps
            fp = self.densities(vp)[which]
            fm = self.densities(vm)[which]
            self.assertAlmostEqual(fs.d[l], (fp.v - fm.v) / (2. * eps),
                                   delta=1e-6 * max(1., abs(fs.d[l])))
            np.testing.assert_allclose(fs.h[:, l], (fp.d - fm.d) / (2. * eps),
                                       rtol=1e-5, atol=1e-8)
        self.assertTrue(np.all(fs.h == fs.h.T))

    def test_star_fd(self):
        self.check_fd(0, ids.shape_alignment[0])

    def test_galaxy_fd(self):
        self.check_fd(1, ids.shape_alignment[1])

    def test_no_hessian(self):
        fs0m, fs1m = self.densities(self.vs)
        fs0n, fs1n = self.densities(self.vs, calculate_hessian=False)
        self.assertEqual(fs0m.v, fs0n.v)
        np.testing.assert_array_equal(fs1m.d, fs1n.d)

    def test_mixture_layout(self):
        star_mcs, gal_mcs = load_bvn_mixtures(
            1, [[self.patch]], [self.vs], [], 0, ids=ids)
        self.assertEqual(star_mcs.shape, (2, 1))
        self.assertEqual(gal_mcs.shape, (2, 8, 2, 1))
        # exp has 6 components
        self.assertIsNone(gal_mcs[0, 7, 1, 0])
        self.assertIsNotNone(gal_mcs[0, 7, 0, 0])
        # inactive sources get no shape derivatives
        self.assertIsNone(gal_mcs[0, 0, 0, 0].sig_sf)
        m_pos = linear_world_to_pix(self.J, self.patch.center,
                                    self.patch.pixel_center, self.vs[ids.u])
        np.testing.assert_allclose(star_mcs[1, 0].the_mean,
                                   m_pos + [0.2, -0.1])
        gcc = gal_mcs[0, 0, 1, 0]
        self.assertEqual(gcc.e_dev_dir, -1.)
        self.assertAlmostEqual(gcc.e_dev_i, 1. - self.vs[ids.e_dev])

    def test_num_allowed_sd(self):
        fs0m, fs1m = self.densities(self.vs, num_allowed_sd=1e6)
        fs0i, fs1i = self.densities(self.vs)
        self.assertEqual(fs0m.v, fs0i.v)
        self.assertEqual(fs1m.v, fs1i.v)
        # the pixel is more than 0.01 sd from every component
        fs0m, fs1m = self.densities(self.vs, num_allowed_sd=0.01)
        self.assertEqual(fs0m.v, 0.)
        self.assertEqual(fs1m.v, 0.)
        self.assertTrue(np.all(fs1m.d == 0))

    def test_close_to_bvn(self):
        bmc = BvnComponent([0., 0.], [[4., 0.], [0., 1.]], 1.)
        self.assertTrue(check_point_close_to_bvn(bmc, [0., 5.9], 3.))
        self.assertFalse(check_point_close_to_bvn(bmc, [6.1, 0.], 3.))


if __name__ == '__main__':
    unittest.main()
