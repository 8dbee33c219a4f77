from setuptools import setup

setup(
    name="vitractor",
    version="0.1.0",
    author="Dustin Lang (CMU) and David W. Hogg (NYU)",
    author_email="dstn@cmu.edu",
    packages=['vitractor'],
    install_requires=['numpy', 'scipy'],
    extras_require={'test': ['pytest']},
    url="http://theTractor.org/",
    license="GPLv2",
    description="variational lower bound for astronomical images",
    long_description="Per-pixel evaluation of the evidence lower bound (ELBO) of a probabilistic model of astronomical images, with analytic gradients and Hessians with respect to the parameters of stars and galaxies.",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: GNU General Public License (GPL)",
        "Operating System :: OS Independent",
        "Programming Language :: Python",
    ],
)
