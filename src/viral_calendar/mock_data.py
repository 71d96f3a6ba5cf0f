"""Static sample calendar used when neither the remote store nor the local cache has a day."""

import random
from typing import Dict, List, Optional, Tuple

from .models import DayBucket, Event

# date -> (title, summary, post_count, hashtag, content_type)
SAMPLE_EVENTS: Dict[str, List[Tuple[str, str, int, Optional[str], str]]] = {
    "2025-01-27": [
        ("AI Breakthrough Announcement",
         "Major tech company reveals next-gen AI model that understands context better than ever.",
         2_450_000, "#AIBreakthrough", "news"),
        ("Celebrity Meme Goes Viral",
         "Unexpected celebrity moment captured on camera becomes the meme of the day.",
         1_800_000, "#CelebrityMeme", "meme"),
        ("Viral Video Challenge",
         "New dance challenge takes over the feeds. Millions attempting the choreography.",
         1_200_000, "#DanceChallenge", "video"),
        ("Political Tweet Thread",
         "Politician posts a 50-tweet thread that everyone is talking about.",
         980_000, None, "tweet"),
        ("Tech Product Launch Drama",
         "New gadget announcement receives mixed reactions from fans and critics.",
         750_000, "#TechDrama", "news"),
    ],
    "2025-01-26": [
        ("Sports Upset of the Year",
         "Underdog team beats reigning champions in a stunning victory.",
         3_200_000, "#SportsUpset", "news"),
        ("Movie Trailer Drops",
         "Highly anticipated sequel trailer releases. Fans analyze every frame.",
         2_100_000, "#MovieTrailer", "video"),
    ],
    "2025-01-15": [
        ("Award Show Moment", "An acceptance speech turns into the night's defining meme.",
         4_500_000, "#AwardShow", "meme"),
        ("New Music Drop", "Surprise album release breaks streaming records within hours.",
         2_800_000, "#NewMusic", "news"),
        ("Twitter Space Drama", "A live audio room spirals into a public feud.",
         1_200_000, None, "tweet"),
    ],
    "2024-12-31": [
        ("New Year Reflections", "Everyone shares their year in review.",
         8_900_000, "#NewYear", "trend"),
    ],
    "2024-12-25": [
        ("Christmas Meme Extravaganza", "Holiday memes flood every timeline.",
         5_200_000, "#Christmas", "meme"),
        ("Holiday Shopping Fails", "Gift mishaps shared by thousands.",
         1_800_000, "#ShoppingFail", "tweet"),
    ],
    "2024-11-05": [
        ("Election Night Coverage", "Real-time reactions to election results dominate the day.",
         15_000_000, "#Election2024", "news"),
    ],
    "2024-10-15": [
        ("Viral Optical Illusion", "An image nobody can agree on splits the internet.",
         3_200_000, "#OpticalIllusion", "meme"),
    ],
    "2024-09-20": [
        ("Celebrity Breakup News", "A high-profile split sends fans into a frenzy.",
         6_800_000, "#CelebrityNews", "news"),
    ],
    "2024-08-08": [
        ("Olympic Meme Moment", "An athlete's reaction becomes an instant classic.",
         4_100_000, "#Olympics", "meme"),
        ("Record Breaking Performance", "A world record falls in the final.",
         2_900_000, "#WorldRecord", "news"),
    ],
    "2023-12-01": [
        ("Viral Cat Video", "A cat's failed jump collects millions of views.",
         2_200_000, "#CatVideo", "video"),
    ],
    "2023-06-15": [
        ("Tech CEO Controversy", "Leaked memo puts a tech CEO under fire.",
         5_400_000, "#TechNews", "news"),
        ("Startup Drama Unfolds", "Founders trade accusations in public threads.",
         1_800_000, "#StartupDrama", "tweet"),
    ],
    "2023-03-10": [
        ("Banking Crisis Discussion", "A regional bank collapse sparks fears of contagion.",
         7_200_000, "#BankingCrisis", "news"),
    ],
    "2022-11-15": [
        ("Crypto Crash Commentary", "An exchange implodes and takes the market with it.",
         8_900_000, "#Crypto", "news"),
    ],
    "2025-02-02": [
        ("Super Bowl Meme Moment", "The halftime show spawns a new meme format.",
         5_200_000, "#SuperBowl", "meme"),
        ("Game Day Commercials", "Fans rank the year's big-game ads.",
         2_800_000, "#SuperBowlAds", "video"),
    ],
    "2025-03-08": [
        ("International Women's Day", "Campaigns and stories trend worldwide.",
         6_500_000, "#IWD2025", "trend"),
    ],
    "2025-05-04": [
        ("Star Wars Day", "May the Fourth posts take over.",
         7_200_000, "#StarWarsDay", "trend"),
    ],
}

# Filler days so the calendar is not mostly empty in demos
FILLER_DATES = [
    "2025-01-01", "2025-01-02", "2025-01-05", "2025-01-10",
    "2024-12-10", "2024-12-15", "2024-12-20",
    "2024-11-10", "2024-11-15", "2024-11-20", "2024-11-25",
    "2024-10-01", "2024-10-10", "2024-10-20",
    "2024-09-01", "2024-09-10", "2024-09-15", "2024-09-30",
    "2024-08-01", "2024-08-15", "2024-08-25",
    "2023-12-15", "2023-12-25",
    "2023-11-11", "2023-11-22",
    "2023-10-05", "2023-10-31",
    "2023-07-04", "2023-07-14",
    "2023-02-14", "2023-02-28",
    "2022-12-25", "2022-12-31",
]

FILLER_TOPICS = [
    "Celebrity News", "Tech Launch", "Sports Update", "Politics", "Entertainment",
    "Viral Challenge", "Meme Format", "Breaking News", "Internet Drama", "Pop Culture",
]
FILLER_TYPES = ["tweet", "news", "meme", "video", "trend"]


def _sample_day(day: str) -> DayBucket:
    events = [
        Event(
            id=f"mock-{day}-{index}",
            title=title,
            summary=summary,
            post_count=count,
            hashtag=hashtag,
            content_type=content_type,
        )
        for index, (title, summary, count, hashtag, content_type) in enumerate(SAMPLE_EVENTS[day])
    ]
    return DayBucket.build(day, events)


def _filler_day(day: str) -> DayBucket:
    # Seeded by date so every process serves the same filler
    rng = random.Random(day)
    events = []
    for index in range(rng.randint(1, 4)):
        topic = rng.choice(FILLER_TOPICS)
        content_type = rng.choice(FILLER_TYPES)
        events.append(Event(
            id=f"mock-{day}-{index}",
            title=f"{topic} Trend",
            summary=f"A significant {content_type} related to {topic.lower()} gained traction on this day.",
            post_count=rng.randint(100_000, 1_099_999),
            hashtag=f"#{topic.replace(' ', '')}",
            content_type=content_type,
        ))
    return DayBucket.build(day, events)


def _build() -> Dict[str, DayBucket]:
    data = {day: _sample_day(day) for day in SAMPLE_EVENTS}
    for day in FILLER_DATES:
        if day not in data:
            data[day] = _filler_day(day)
    return data


MOCK_DATA: Dict[str, DayBucket] = _build()


def get_mock_day(date: str) -> Optional[DayBucket]:
    return MOCK_DATA.get(date)


def all_mock_dates() -> List[str]:
    return sorted(MOCK_DATA, reverse=True)
