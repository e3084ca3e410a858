from setuptools import find_packages, setup

with open("requirements.txt", "r", encoding="UTF-8") as f:
    required = f.read().splitlines()

setup(
    name="chainsetup",
    version="0.1",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=required,
    extras_require={"test": ["pytest>=7.0"]},
)
