# airdrop_backend/features/__init__.py

# This file makes the 'features' directory a Python package.
