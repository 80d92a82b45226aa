from __future__ import annotations

import random
from typing import Optional

from ..schemas import Appointment, DayRecord, Interview, Interviewer, SeedData

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
SLOT_TIMES = ["12pm", "1pm", "2pm", "3pm", "4pm"]
INTERVIEWERS_PER_DAY = 5

INTERVIEWERS = [
    ("Sylvia Palmer", "https://i.imgur.com/LpaY82x.png"),
    ("Tori Malcolm", "https://i.imgur.com/Nmx0Qxo.png"),
    ("Mildred Nazir", "https://i.imgur.com/T2WwVfS.png"),
    ("Cohana Roy", "https://i.imgur.com/FK8V841.jpg"),
    ("Sven Jones", "https://i.imgur.com/twYrpay.jpg"),
    ("Susan Reynolds", "https://i.imgur.com/TdOAdde.jpg"),
    ("Alec Quon", "https://i.imgur.com/3tVgsra.jpg"),
    ("Viktor Jain", "https://i.imgur.com/iHq8K8Z.jpg"),
    ("Lindsay Chu", "https://i.imgur.com/nPywAp1.jpg"),
    ("Samantha Stanic", "https://i.imgur.com/okB9WKC.jpg"),
]

STUDENTS = [
    "Archie Cohen",
    "Chad Takahashi",
    "Jamal Jordan",
    "Leopold Silvers",
    "Liam Martinez",
    "Lydia Miller-Jones",
    "Maria Boucher",
    "Michael Chan-Montoya",
    "Richard Wong",
    "Yuko Smith",
]


def generate_seed(rng: Optional[random.Random] = None) -> SeedData:
    """Build a fresh week of days, slots and interviewers.

    Slot ids run from 1 in day order. Roughly half the slots come back
    booked, always with an interviewer who is available that day.
    """
    rng = rng or random.Random()
    interviewers = [
        Interviewer(id=index, name=name, avatar=avatar)
        for index, (name, avatar) in enumerate(INTERVIEWERS, start=1)
    ]
    interviewer_ids = [interviewer.id for interviewer in interviewers]

    days: list[DayRecord] = []
    appointments: list[Appointment] = []
    next_id = 1
    for day_id, day_name in enumerate(DAY_NAMES, start=1):
        available = sorted(rng.sample(interviewer_ids, INTERVIEWERS_PER_DAY))
        slot_ids = []
        for time in SLOT_TIMES:
            interview = None
            if rng.random() < 0.5:
                interview = Interview(
                    student=rng.choice(STUDENTS),
                    interviewer=rng.choice(available),
                )
            appointments.append(Appointment(id=next_id, time=time, interview=interview))
            slot_ids.append(next_id)
            next_id += 1
        days.append(
            DayRecord(id=day_id, name=day_name, appointments=slot_ids, interviewers=available)
        )
    return SeedData(days=days, appointments=appointments, interviewers=interviewers)
