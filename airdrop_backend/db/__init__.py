# airdrop_backend/db/__init__.py

# This file makes the 'db' directory a Python package.
