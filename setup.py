# This file is part of pyRDDLSim.

# pyRDDLSim is free software: you can redistribute it and/or modify
# it under the terms of the MIT License as published by
# the Free Software Foundation.

# pyRDDLSim is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# MIT License for more details.

# You should have received a copy of the MIT License
# along with pyRDDLSim. If not, see <https://opensource.org/licenses/MIT>.

from setuptools import setup, find_packages


setup(
      name='pyRDDLSim',
      version='0.1.0',
      description="pyRDDLSim: grounding, stratification and simulation of RDDL domains",
      license="MIT License",
      packages=find_packages(include=['pyRDDLSim', 'pyRDDLSim.*']),
      install_requires=['numpy>=1.22', 'gymnasium>=0.26.0', 'termcolor'],
      extras_require={'test': ['pytest']},
      python_requires=">=3.8",
      classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Natural Language :: English",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
