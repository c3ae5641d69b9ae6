from setuptools import setup
from setuptools import find_packages

setup(name='rigclone',
      description='Clone, decode and edit amateur radio channel memories',
      packages=find_packages(include=["rigclone*"]),
      include_package_data=True,
      version='0.1.0',
      python_requires=">=3.10,<4",
      install_requires=[
          'pyserial',
      ],
      extras_require={
          'test': ['pytest'],
      },
      entry_points={
          'console_scripts': [
              "rigclone=rigclone.cli.main:main",
          ],
      },
      )
