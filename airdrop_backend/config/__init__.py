# airdrop_backend/config/__init__.py

# This file makes the 'config' directory a Python package.
