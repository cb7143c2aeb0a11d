from setuptools import setup, find_packages

setup(
    name="fastquantiles",
    version="0.1.0",
    description="Mergeable epsilon-approximate quantile sketches (modified Greenwald-Khanna)",
    packages=find_packages(include=["fastquantiles", "fastquantiles.*"]),
    install_requires=[
        "matplotlib",
        "pandas",
    ],
    extras_require={
        "test": ["pytest"],
    },
    include_package_data=True,
    python_requires=">=3.13",
)
