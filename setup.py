from setuptools import setup, find_packages

setup(
    name="covprofile",
    version="0.1.0",
    description="Coverage profiles over binned genomic loci",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "covprofile=covprofile.cli:cli",
        ],
    },
    install_requires=[
        "numpy",
        "pandas",
        "pyBigWig",
        "PyYAML",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    package_data={
        "covprofile.resources": [
            "config.default.yaml",
        ],
    },
)
