from setuptools import setup, find_packages

setup(
    name="hrv_monitor",
    version="0.2.0",
    description="Fingertip PPG heart-rate-variability monitor via camera",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "opencv-python>=4.8",
    ],
    extras_require={
        "dev": ["pytest>=7.4", "scipy>=1.10"],
    },
    entry_points={
        "console_scripts": [
            "hrv-monitor=main:main",
        ]
    },
)
