# airdrop_backend/shared/result.py

# Result variants for lookups where absence is an expected outcome.
# Callers branch on the type instead of catching an exception:
#
#     parent = await referral.find_parent(address)
#     if isinstance(parent, NotFound):
#         ...
#     use(parent.value)

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T


@dataclass(frozen=True)
class NotFound:
    reason: str = "not_found"


Lookup = Union[Found[T], NotFound]
