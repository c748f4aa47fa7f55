# airdrop_backend/features/twitter/__init__.py

# This file makes the 'twitter' directory a Python package.
