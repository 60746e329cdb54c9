from dataclasses import dataclass
from enum import Enum
from typing import Optional

from lockcomp.logger import logger


class LockOwner(Enum):
    UNOWNED = "unowned"
    GENERAL = "general"
    CAST = "cast"


# Higher wins. A cast pre-application is never displaced by a general prediction.
_PRIORITY = {
    LockOwner.UNOWNED: 0,
    LockOwner.GENERAL: 1,
    LockOwner.CAST: 2,
}


@dataclass(frozen=True)
class LockClaim:
    owner: LockOwner = LockOwner.UNOWNED
    sequence: Optional[int] = None


class LockArbiter:
    """
    Single write-intent holder for the host's animation lock field.

    Unowned -> PredictedByGeneral(seq) -> Unowned
    Unowned/General -> PredictedByCast -> Unowned
    """

    def __init__(self):
        self._claim = LockClaim()

    @property
    def claim(self) -> LockClaim:
        return self._claim

    @property
    def owner(self) -> LockOwner:
        return self._claim.owner

    def try_claim(self, owner: LockOwner, sequence: Optional[int] = None) -> bool:
        if owner is LockOwner.UNOWNED:
            raise ValueError("Use release() to drop a claim")
        if _PRIORITY[owner] < _PRIORITY[self._claim.owner]:
            logger.debug(f"LockArbiter: {owner.value} claim denied, held by {self._claim.owner.value}")
            return False
        self._claim = LockClaim(owner=owner, sequence=sequence)
        return True

    def release(self, owner: LockOwner) -> None:
        """Drops the claim only if `owner` still holds it."""
        if self._claim.owner is owner:
            self._claim = LockClaim()

    def reset(self) -> None:
        self._claim = LockClaim()
