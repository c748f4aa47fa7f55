# airdrop_backend/features/airdrop/__init__.py

# This file makes the 'airdrop' directory a Python package.
