from setuptools import setup, find_packages

setup(name='retishap',
      version='0.1.0',
      description='Coalition-sampling explanations (SHAP-style) for retinal image classifiers',
      license='BSD',
      packages=find_packages(exclude=['examples', 'tests']),
      python_requires='>=3.8',
      install_requires=[
          'matplotlib',
          'numpy',
          'Pillow',
          'tqdm >= 4.29.1',
          'scikit-image>=0.19',
      ],
      extras_require={
          'dev': ['pytest', 'flake8'],
      },
      include_package_data=True,
      zip_safe=False)
