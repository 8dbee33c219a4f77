"""
This file is part of the Tractor project.
Copyright 2011, 2012 Dustin Lang and David W. Hogg.
Licensed under the GPLv2; see the file COPYING for details.

`mixtures.py`
=============

Mixture-of-Gaussians light densities and their derivatives.

The light of a star is the PSF, a mixture of bivariate normals,
centred on the star; the light of a galaxy is each of its profile
components stretched by the galaxy shape and convolved with each PSF
component.  This module builds those bivariate normal components for a
band (`load_bvn_mixtures`) and evaluates them at a pixel, accumulating
the density and its derivatives with respect to the position and shape
parameters into per-source sensitive floats (`populate_fsm_vecs`).

Derivatives are first taken of the log density with respect to the
pixel offset and the three unique covariance entries, then pushed
through the WCS jacobian (position) and the galaxy shape-to-covariance
map (shape).
"""
import numpy as np

from vitractor.params import CanonicalParams, StarPosParams, \
    GalaxyPosParams, Ia
from vitractor.galaxy import galaxy_prototypes, n_gal_components, \
    get_bvn_cov, GalaxySigmaDerivs
from vitractor.patch import linear_world_to_pix

star_ids = StarPosParams()
gal_ids = GalaxyPosParams()

# Local indices (within GalaxyPosParams) of e_axis, e_angle, e_scale,
# in the order GalaxySigmaDerivs uses.
gal_shape_local = np.array([gal_ids.e_axis, gal_ids.e_angle,
                            gal_ids.e_scale])

# d Sigma / d (S11, S12, S22)
sigma_basis = np.array([[[1., 0.], [0., 0.]],
                        [[0., 1.], [1., 0.]],
                        [[0., 0.], [0., 1.]]])


class BvnComponent(object):
    '''
    A weighted bivariate normal, ready for evaluation.

    `z` is the weight times the normalizing constant.
    '''
    def __init__(self, the_mean, the_cov, weight):
        self.the_mean = np.asarray(the_mean, dtype=float).reshape(2)
        cov = np.asarray(the_cov, dtype=float).reshape(2, 2)
        the_det = cov[0, 0] * cov[1, 1] - cov[0, 1] * cov[1, 0]
        assert(the_det > 0)
        self.the_cov = cov
        self.precision = np.array([[cov[1, 1], -cov[0, 1]],
                                   [-cov[1, 0], cov[0, 0]]]) / the_det
        self.z = weight / (2. * np.pi * np.sqrt(the_det))
        self.major_sd = np.sqrt(np.max(np.linalg.eigvalsh(cov)))

    def __repr__(self):
        return 'BvnComponent(mean=[%g, %g], z=%g)' % (
            self.the_mean[0], self.the_mean[1], self.z)


class GalaxyCacheComponent(object):
    '''
    A galaxy profile component convolved with a PSF component.

    `e_dev_dir` is +1 for the deVaucouleurs type and -1 for the
    exponential; `e_dev_i` is the weight of this type within the galaxy
    (e_dev or 1 - e_dev).  `sig_sf` holds the covariance derivatives
    with respect to the galaxy shape, or None.
    '''
    def __init__(self, e_dev_dir, e_dev_i, gc, pc, u, e_axis, e_angle,
                 e_scale, calculate_derivs, calculate_hessian):
        XiXi = get_bvn_cov(e_axis, e_angle, e_scale)
        mean_s = pc.xiBar + u
        var_s = pc.tauBar + gc.nuBar * XiXi
        weight = pc.alphaBar * gc.etaBar
        self.e_dev_dir = e_dev_dir
        self.e_dev_i = e_dev_i
        self.bmc = BvnComponent(mean_s, var_s, weight)
        self.sig_sf = None
        if calculate_derivs:
            self.sig_sf = GalaxySigmaDerivs(
                e_angle, e_axis, e_scale, XiXi,
                calculate_tensor=calculate_hessian)
            self.sig_sf.scale(gc.nuBar)


class BivariateNormalDerivatives(object):
    '''
    Scratch space for the derivatives of one component's log density.

    Subscripts: x = pixel offset, sig = (S11, S12, S22),
    u = world position, s = galaxy shape (e_axis, e_angle, e_scale).
    '''
    def __init__(self, dtype=np.float64):
        self.f_pre = dtype(0.)
        self.py = np.zeros(2, dtype)

        self.bvn_x_d = np.zeros(2, dtype)
        self.bvn_sig_d = np.zeros(3, dtype)
        self.bvn_xx_h = np.zeros((2, 2), dtype)
        self.bvn_xsig_h = np.zeros((2, 3), dtype)
        self.bvn_sigsig_h = np.zeros((3, 3), dtype)

        self.bvn_u_d = np.zeros(2, dtype)
        self.bvn_uu_h = np.zeros((2, 2), dtype)
        self.bvn_s_d = np.zeros(3, dtype)
        self.bvn_ss_h = np.zeros((3, 3), dtype)
        self.bvn_us_h = np.zeros((2, 3), dtype)

        # log-density derivatives over GalaxyPosParams
        self.gal_d = np.zeros(gal_ids.size, dtype)
        self.gal_h = np.zeros((gal_ids.size, gal_ids.size), dtype)


def eval_bvn_pdf(bvn_derivs, bmc, x):
    '''
    Evaluates the weighted density of *bmc* at pixel *x*, storing it in
    bvn_derivs.f_pre, and the precision-weighted offset in
    bvn_derivs.py.
    '''
    P = bmc.precision
    y0 = x[0] - bmc.the_mean[0]
    y1 = x[1] - bmc.the_mean[1]
    py0 = P[0, 0] * y0 + P[0, 1] * y1
    py1 = P[1, 0] * y0 + P[1, 1] * y1
    bvn_derivs.py[0] = py0
    bvn_derivs.py[1] = py1
    bvn_derivs.f_pre = bmc.z * np.exp(-0.5 * (y0 * py0 + y1 * py1))
    return bvn_derivs.f_pre


def get_bvn_derivs(bvn_derivs, bmc, calculate_x_hess,
                   calculate_sigma_hessian):
    '''
    Derivatives of the log density with respect to the pixel offset and
    the covariance entries.  Requires a prior call to eval_bvn_pdf.
    '''
    py = bvn_derivs.py
    P = bmc.precision

    bvn_derivs.bvn_x_d[:] = -py
    if calculate_x_hess:
        bvn_derivs.bvn_xx_h[:, :] = -P

    # d/dSigma of -0.5 y' Sigma^-1 y, plus d/dSigma of -0.5 log|Sigma|
    sig_d = bvn_derivs.bvn_sig_d
    sig_d[0] = 0.5 * py[0] * py[0] - 0.5 * P[0, 0]
    sig_d[1] = py[0] * py[1] - P[0, 1]
    sig_d[2] = 0.5 * py[1] * py[1] - 0.5 * P[1, 1]

    if calculate_sigma_hessian:
        Epy = [np.dot(E, py) for E in sigma_basis]
        PE = [np.dot(P, E) for E in sigma_basis]
        for s in range(3):
            bvn_derivs.bvn_xsig_h[:, s] = np.dot(P, Epy[s])
        sigsig = bvn_derivs.bvn_sigsig_h
        for s in range(3):
            for t in range(s, 3):
                sigsig[s, t] = (-np.dot(Epy[s], np.dot(P, Epy[t])) +
                                0.5 * np.trace(np.dot(PE[t], PE[s])))
                sigsig[t, s] = sigsig[s, t]


def transform_bvn_ux_derivs(bvn_derivs, wcs_jacobian, calculate_hessian):
    '''
    Converts pixel-offset derivatives into derivatives with respect to
    the source's world position.  The component mean moves with the
    source, so the offset moves against it.
    '''
    J = wcs_jacobian
    bvn_derivs.bvn_u_d[:] = -np.dot(J.T, bvn_derivs.bvn_x_d)
    if calculate_hessian:
        uu = np.dot(J.T, np.dot(bvn_derivs.bvn_xx_h, J))
        bvn_derivs.bvn_uu_h[:, :] = 0.5 * (uu + uu.T)


def transform_bvn_derivs(bvn_derivs, sig_sf, wcs_jacobian,
                         calculate_hessian):
    '''
    As transform_bvn_ux_derivs, and also converts covariance-entry
    derivatives into galaxy-shape derivatives through *sig_sf*.
    '''
    transform_bvn_ux_derivs(bvn_derivs, wcs_jacobian, calculate_hessian)
    j = sig_sf.j
    bvn_derivs.bvn_s_d[:] = np.dot(j.T, bvn_derivs.bvn_sig_d)
    if calculate_hessian:
        ss = (np.dot(j.T, np.dot(bvn_derivs.bvn_sigsig_h, j)) +
              np.einsum('s,sab->ab', bvn_derivs.bvn_sig_d, sig_sf.t))
        bvn_derivs.bvn_ss_h[:, :] = 0.5 * (ss + ss.T)
        bvn_derivs.bvn_us_h[:, :] = -np.dot(
            wcs_jacobian.T, np.dot(bvn_derivs.bvn_xsig_h, j))


def accum_star_pos(bvn_derivs, fs0m, calculate_derivs, calculate_hessian,
                   bmc, x, wcs_jacobian, is_active_source):
    '''
    Adds one star (PSF) component's density at pixel *x* to *fs0m*.
    '''
    f = eval_bvn_pdf(bvn_derivs, bmc, x)
    fs0m.v += f
    if not (calculate_derivs and is_active_source):
        return

    get_bvn_derivs(bvn_derivs, bmc, True, False)
    transform_bvn_ux_derivs(bvn_derivs, wcs_jacobian, calculate_hessian)
    u_d = bvn_derivs.bvn_u_d
    u = star_ids.u
    fs0m.d[u] += f * u_d
    if calculate_hessian:
        fs0m.h[np.ix_(u, u)] += f * (bvn_derivs.bvn_uu_h +
                                     np.outer(u_d, u_d))


def accum_galaxy_pos(bvn_derivs, fs1m, calculate_derivs, calculate_hessian,
                     gcc, x, wcs_jacobian, is_active_source):
    '''
    Adds one convolved galaxy component's density at pixel *x* to
    *fs1m*.
    '''
    f_pre = eval_bvn_pdf(bvn_derivs, gcc.bmc, x)
    f = f_pre * gcc.e_dev_i
    fs1m.v += f
    if not (calculate_derivs and is_active_source):
        return

    get_bvn_derivs(bvn_derivs, gcc.bmc, True, calculate_hessian)
    transform_bvn_derivs(bvn_derivs, gcc.sig_sf, wcs_jacobian,
                         calculate_hessian)

    u = gal_ids.u
    sh = gal_shape_local
    g = bvn_derivs.gal_d
    g[:] = 0.
    g[u] = bvn_derivs.bvn_u_d
    g[sh] = bvn_derivs.bvn_s_d

    fs1m.d += f * g
    # e_dev scales the whole component, up for dev and down for exp.
    fs1m.d[gal_ids.e_dev] += gcc.e_dev_dir * f_pre

    if calculate_hessian:
        H = bvn_derivs.gal_h
        H[:, :] = 0.
        H[np.ix_(u, u)] = bvn_derivs.bvn_uu_h
        H[np.ix_(sh, sh)] = bvn_derivs.bvn_ss_h
        H[np.ix_(u, sh)] = bvn_derivs.bvn_us_h
        H[np.ix_(sh, u)] = bvn_derivs.bvn_us_h.T
        fs1m.h += f * (H + np.outer(g, g))

        c = gcc.e_dev_dir * f_pre * g
        fs1m.h[gal_ids.e_dev, :] += c
        fs1m.h[:, gal_ids.e_dev] += c


def check_point_close_to_bvn(bmc, x, num_allowed_sd):
    '''
    Is pixel *x* within *num_allowed_sd* major-axis standard deviations
    of the component mean?
    '''
    dist = np.hypot(x[0] - bmc.the_mean[0], x[1] - bmc.the_mean[1])
    return dist < num_allowed_sd * bmc.major_sd


def populate_fsm(bvn_derivs, fs0m, fs1m, calculate_derivs,
                 calculate_hessian, s, x, is_active_source, num_allowed_sd,
                 wcs_jacobian, gal_mcs, star_mcs):
    '''
    Sets *fs0m* and *fs1m* to source *s*'s star and galaxy light
    densities at pixel *x*.
    '''
    clear_hessian = calculate_derivs and calculate_hessian and \
        is_active_source
    check_sd = np.isfinite(num_allowed_sd)

    fs0m.clear(clear_hessian)
    for k in range(star_mcs.shape[0]):
        bmc = star_mcs[k, s]
        if bmc is None:
            continue
        if check_sd and not check_point_close_to_bvn(bmc, x,
                                                     num_allowed_sd):
            continue
        accum_star_pos(bvn_derivs, fs0m, calculate_derivs,
                       calculate_hessian, bmc, x, wcs_jacobian,
                       is_active_source)

    fs1m.clear(clear_hessian)
    for i in range(Ia):
        for j in range(len(galaxy_prototypes[i])):
            for k in range(gal_mcs.shape[0]):
                gcc = gal_mcs[k, j, i, s]
                if gcc is None:
                    continue
                if check_sd and not check_point_close_to_bvn(
                        gcc.bmc, x, num_allowed_sd):
                    continue
                accum_galaxy_pos(bvn_derivs, fs1m, calculate_derivs,
                                 calculate_hessian, gcc, x, wcs_jacobian,
                                 is_active_source)


def populate_fsm_vecs(bvn_derivs, fs0m_vec, fs1m_vec, calculate_derivs,
                      calculate_hessian, patches, active_sources,
                      num_allowed_sd, n, h, w, gal_mcs, star_mcs):
    '''
    Computes the star and galaxy light densities at image pixel (h, w)
    of band *n* for every source whose active-pixel bitmap contains
    the pixel.

    *patches* is indexed [source][band]; *active_sources* is a
    container of source indices.
    '''
    x = np.array([h, w], dtype=float)
    for s in range(len(patches)):
        p = patches[s][n]
        if not p.isActivePixel(h, w):
            continue
        populate_fsm(bvn_derivs, fs0m_vec[s], fs1m_vec[s],
                     calculate_derivs, calculate_hessian, s, x,
                     s in active_sources, num_allowed_sd, p.wcs_jacobian,
                     gal_mcs, star_mcs)


def load_bvn_mixtures(S, patches, vp, active_sources, n,
                      calculate_derivs=True, calculate_hessian=True,
                      ids=None):
    '''
    Convolves the current source positions and galaxy shapes with the
    PSF of band *n*.

    Returns:
     - star_mcs: object array of BvnComponent indexed [psf component,
       source]
     - gal_mcs: object array of GalaxyCacheComponent indexed [psf
       component, galaxy component, galaxy type, source]; slots past
       the end of a profile are None.

    Shape derivatives are only set up for *active_sources*.
    '''
    if ids is None:
        ids = CanonicalParams()
    psf_K = max(patches[s][n].psf.K for s in range(S))
    star_mcs = np.empty((psf_K, S), dtype=object)
    gal_mcs = np.empty((psf_K, n_gal_components, Ia, S), dtype=object)

    for s in range(S):
        p = patches[s][n]
        vs = vp[s]
        m_pos = linear_world_to_pix(p.wcs_jacobian, p.center,
                                    p.pixel_center, vs[ids.u])
        psf = p.psf.getComponents()

        for k, pc in enumerate(psf):
            star_mcs[k, s] = BvnComponent(pc.xiBar + m_pos, pc.tauBar,
                                          pc.alphaBar)

        source_derivs = calculate_derivs and (s in active_sources)
        for i in range(Ia):
            e_dev_dir = 1. if i == 0 else -1.
            e_dev_i = vs[ids.e_dev] if i == 0 else 1. - vs[ids.e_dev]
            for j, gc in enumerate(galaxy_prototypes[i]):
                for k, pc in enumerate(psf):
                    gal_mcs[k, j, i, s] = GalaxyCacheComponent(
                        e_dev_dir, e_dev_i, gc, pc, m_pos,
                        vs[ids.e_axis], vs[ids.e_angle], vs[ids.e_scale],
                        source_derivs, calculate_hessian)
    return star_mcs, gal_mcs
