# airdrop_backend/tests/__init__.py

# This file makes the 'tests' directory a Python package.
