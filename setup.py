from setuptools import setup

setup(
    name="ojob-project",
    version="0.1.0",
    description="Implementation of the OJoB joint diagonalization algorithm",

    # This tells setuptools "the root of our modules is in 'src'"
    package_dir={'': 'src'},

    # The modules live directly inside the 'src' directory.
    py_modules=[
        'ambiguity', 'cross_cov', 'csp', 'dataset_gen',
        'nearest_orth', 'ojob', 'prewhitening',
    ],

    # Specify dependencies
    install_requires=[
        'numpy'
    ],
    extras_require={
        'test': ['pytest'],
    },
)
