from .engine import *
from .params import *
from .sensitive import *
from .psf import NCircularGaussianPSF, GaussianMixturePSF, PsfComponent
from .galaxy import *
from .image import Image
from .patch import *
from .brightness import *
from .priors import *

__all__ = [
    # modules
    'mixtures', 'pixel', 'ducks',
    # params
    'Ia', 'CanonicalParams', 'StarPosParams', 'GalaxyPosParams',
    'BrightnessParams', 'init_source',
    # sensitive
    'SensitiveFloat', 'SensitiveFloatSnapshot', 'add_scaled_sfs',
    'add_sources_sf', 'combine_sfs', 'multiply_sfs', 'assert_all_finite',
    # psf
    'NCircularGaussianPSF', 'GaussianMixturePSF', 'PsfComponent',
    # galaxy
    'GalaxyComponent', 'galaxy_prototypes', 'get_bvn_cov',
    'GalaxySigmaDerivs',
    # image, patch
    'Image', 'SkyPatch', 'linear_world_to_pix', 'load_active_pixels',
    # brightness
    'SourceBrightness', 'load_source_brightnesses',
    # priors
    'PriorParams', 'subtract_kl',
    # engine
    'ElboArgs', 'ElboIntermediateVariables', 'elbo_likelihood', 'elbo',
    'get_expected_pixel_brightness', 'set_fp_err',
]
