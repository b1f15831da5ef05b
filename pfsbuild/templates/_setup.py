# Generated by `pfsbuild configure` for %%package_name%% %%version%%.
# Package metadata lives in setup.cfg.
from setuptools import setup

setup()
