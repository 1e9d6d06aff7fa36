from setuptools import find_packages, setup

setup(
    name='dcms',
    version='0.9.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    package_data={
        'dcms': ['templates/*.html'],
    },
    zip_safe=False,
    python_requires='>= 3.8',
    install_requires=[
        'click',
        'dulwich',
        'flask',
        'flask-login',
        'Flask-WTF',
        'markupsafe',
        'passlib',
        'tinydb>=4',
        'tinyrecord>=0.2.0',
        'wtforms',
    ],
    extras_require={
        'dev': [
            'coverage',
            'pytest',
        ],
    },
)
