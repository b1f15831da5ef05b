# Generated by `pfsbuild configure`, do not edit.
__version__ = '%%version%%'
__build__ = '%%build%%'
