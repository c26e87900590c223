"""
Command-line front end: an interactive REPL, or one reply with ``--message``.
"""

import argparse
import asyncio
import logging
import random
import sys

from hadescore.chatbot.base_core import AgentCore
from hadescore.config import ConfigManager, ConfigurationError

logger = logging.getLogger(__name__)

PROMPT = "You: "


async def _converse(agent: AgentCore, message=None, show_topic=False) -> int:
    await agent.initialize()
    try:
        if message is not None:
            response = await agent.process_input(message)
            print(_format(response, show_topic))
            return 0

        print("HADES is listening. Type 'help' for commands, 'exit' to leave.")
        while True:
            try:
                line = await asyncio.to_thread(input, PROMPT)
            except EOFError:
                break
            if not line.strip():
                continue
            response = await agent.process_input(line)
            print(_format(response, show_topic))
            if response.exit:
                break
        return 0
    finally:
        await agent.shutdown()
        if agent.ai is not None:
            await agent.ai.close()
        if agent.memory.blob_store is not None:
            await agent.memory.blob_store.close()


def _format(response, show_topic: bool) -> str:
    prefix = f"HADES [{response.topic}]: " if show_topic else "HADES: "
    return prefix + response.text


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog='hades', description='HADES rule-based dialogue agent')
    parser.add_argument('--config', help='Path to a settings YAML file')
    parser.add_argument('--message', '-m', help='Reply to a single message and exit')
    parser.add_argument('--topics-dir', help='Extra directory of topic modules or YAML files')
    parser.add_argument('--seed', type=int, help='Seed for reproducible replies')
    parser.add_argument('--show-topic', action='store_true', help='Print the topic behind each reply')
    args = parser.parse_args(argv)

    try:
        manager = ConfigManager(config_path=args.config)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        for error in e.errors:
            print(f"  - {error.field_path}: {error.message}", file=sys.stderr)
        return 2

    settings = manager.settings
    if args.topics_dir:
        settings.topics_directory = args.topics_dir

    kwargs = {}
    if args.seed is not None:
        kwargs['rng'] = random.Random(args.seed)

    agent = AgentCore.from_settings(settings, **kwargs)
    try:
        return asyncio.run(_converse(agent, args.message, args.show_topic))
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
