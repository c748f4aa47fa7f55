# airdrop_backend/features/subscription/__init__.py

# This file makes the 'subscription' directory a Python package.
