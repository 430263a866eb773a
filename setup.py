import os, sys
from pathlib import Path
HERE = Path(os.path.realpath(__file__)).parent
sys.path = [str(p) for p in set([
    HERE.joinpath("src")
]+sys.path)]
import setuptools
from comphifi.utils import NAME, ENTRY_POINTS, VERSION
SHORT_SUMMARY = "A pipeline for HiFi and Hi-C genome assembly, scaffolding, gap closing and evaluation"
with open(HERE.joinpath("README.md"), "r", encoding="utf-8") as fh:
    long_description = fh.read()

if __name__ == "__main__":
    setuptools.setup(
        name=NAME,
        version=VERSION,
        author="the CompHiFi authors",
        description=SHORT_SUMMARY,
        long_description=long_description,
        long_description_content_type="text/markdown",
        classifiers=[
            "Programming Language :: Python :: 3",
            "Operating System :: Unix",
        ],
        package_dir={"": "src"},
        packages=setuptools.find_packages(where="src"),
        package_data={
            "":[ # "" is all packages
                "version.txt",
                "steps/nextdenovo.cfg",
            ],
        },
        entry_points={
            'console_scripts': ENTRY_POINTS,
        },
        python_requires=">=3.10",
        install_requires=[
            "biopython",
            "numpy",
            "pandas",
        ],
        extras_require={
            "test": ["pytest"],
        },
    )
