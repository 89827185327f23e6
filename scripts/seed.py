"""Seed the forum database through the service layer."""
import argparse
import asyncio
import random
import time

from forum.bus import bus
from forum.context import CallContext
from forum.database import Base, async_session, engine
from forum.schemas import ChannelCreate, MessageCreate, TopicCreate, UserCreate
from forum.services import channel_service, topic_service, user_service

SUBJECTS = ["python", "fastapi", "postgresql", "redis", "docker", "asyncio",
            "sqlalchemy", "testing", "performance", "security"]


async def seed(small: bool = False, seed_value: int | None = None):
    rng = random.Random(seed_value)
    num_users = 5 if small else 50
    num_channels = 3 if small else 20
    topics_per_channel = 2 if small else 10
    messages_per_topic = 3 if small else 15

    print(f"Seeding: {num_users} users, {num_channels} channels, "
          f"{num_channels * topics_per_channel} topics")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        anonymous = CallContext(db=session)

        # Users, each with their own context so writes are attributed
        members: list[CallContext] = []
        for i in range(num_users):
            created = await user_service.create_user(anonymous, UserCreate(
                username=f"user{i:04d}",
                email=f"user{i:04d}@example.com",
                password="password",
                bio=f"I am test user number {i}.",
            ))
            user = created["user"]
            members.append(CallContext(db=session, user=user, token=user["token"]))
        print(f"  Created {len(members)} users")

        total_topics = total_messages = total_follows = 0
        for i in range(num_channels):
            subject = rng.choice(SUBJECTS)
            owner = rng.choice(members)
            channel = (await channel_service.create_channel(owner, ChannelCreate(
                title=f"All about {subject} {i}",
                description=f"Discussion of {subject} in production.",
            )))["channel"]

            for member in rng.sample(members, k=rng.randint(1, len(members))):
                await channel_service.join_channel(member, channel["slug"])
                total_follows += 1

            for j in range(topics_per_channel):
                topic = (await topic_service.create_topic(rng.choice(members), channel["slug"], TopicCreate(
                    title=f"{subject.capitalize()} question {j}",
                    description=f"How do you tune {subject}?",
                )))["topic"]
                total_topics += 1
                for k in range(rng.randint(1, messages_per_topic)):
                    await topic_service.add_message(rng.choice(members), topic["slug"], MessageCreate(
                        body=f"Reply {k} on {subject}.",
                    ))
                    total_messages += 1

        await session.commit()
        await bus.flush_pending(session)

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Channels: {num_channels}")
    print(f"  Topics: {total_topics}")
    print(f"  Messages: {total_messages}")
    print(f"  Follows: {total_follows}")


def main():
    parser = argparse.ArgumentParser(description="Seed the forum database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, seed_value=args.seed))


if __name__ == "__main__":
    main()
