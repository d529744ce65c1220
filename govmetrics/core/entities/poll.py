from datetime import datetime

from pydantic import BaseModel


class PollRosterEntry(BaseModel):
    pollId: int
    startDate: datetime


class PollVoterCount(BaseModel):
    pollId: int
    startDate: datetime
    uniqueVoters: int


class PollVotersData(BaseModel):
    """
    Average unique voters across the polls started in one month.
    month is formatted "YYYY-M" (UTC, month not zero padded).
    """
    month: str
    pollId: int
    uniqueVoters: int
