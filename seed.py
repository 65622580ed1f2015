from datetime import timedelta

from hub import ProximityHub
from schemas import Message, Position
from utils import new_id

DEMO_USERS = [
    ("CoolPanda", 40.7589, -73.9851, 2),
    ("SwiftEagle", 40.7614, -73.9776, 1),
    ("BrightFox", 40.7505, -73.9934, 2),
    ("WarmWolf", 40.7648, -73.9808, 5),
    ("HappyDolphin", 40.7580, -73.9855, 1),
]

# username, content, minutes ago
DEMO_MESSAGES = [
    ("CoolPanda", "Anyone know what time the farmer's market closes today?", 15),
    ("SwiftEagle", "Just saw a food truck on 42nd street with amazing tacos!", 8),
    ("BrightFox", "Is anyone else hearing that street musician by the park? They're incredible!", 25),
    ("WarmWolf", "Coffee shop on the corner has free WiFi if anyone needs it", 5),
]


def seed_demo_data(hub: ProximityHub) -> None:
    """Populate a few users and recent messages around midtown Manhattan."""
    positions = {}
    for username, lat, lng, radius in DEMO_USERS:
        position = Position(latitude=lat, longitude=lng)
        hub.users.create(username, position=position, radius=radius)
        positions[username] = position

    now = hub.messages.clock()
    for username, content, minutes_ago in DEMO_MESSAGES:
        created_at = now - timedelta(minutes=minutes_ago)
        position = positions[username]
        hub.messages.add(Message(
            id=new_id(),
            user_id=f"demo-{username}",
            username=username,
            content=content,
            latitude=position.latitude,
            longitude=position.longitude,
            radius=2,
            created_at=created_at,
            expires_at=created_at + hub.messages.retention,
        ))
