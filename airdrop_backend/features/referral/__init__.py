# airdrop_backend/features/referral/__init__.py

# This file makes the 'referral' directory a Python package.
