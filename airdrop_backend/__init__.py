# airdrop_backend/__init__.py

# Social-action verification, referral rewards and airdrop bookkeeping backend.
