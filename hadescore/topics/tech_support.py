"""
Tech support topic: troubleshooting with device-specific tips.
"""

import re

DEVICE = re.compile(r"\b(windows|mac|iphone|android)\b", re.IGNORECASE)
STILL_BROKEN = re.compile(r"still not working|didn'?t help|did not help", re.IGNORECASE)

DEVICE_TIPS = {
    'windows': "run the Disk Cleanup utility",
    'mac': "reset the SMC and NVRAM",
    'iphone': "force restart by pressing volume up, volume down, then holding the side button",
    'android': "boot into safe mode to rule out misbehaving apps",
}

ESCALATION_RESPONSE = {
    'response': (
        "I recommend:\n"
        "1. Contacting manufacturer support\n"
        "2. Visiting a repair shop\n"
        "3. Checking community forums"
    ),
    'solutions': [
        "manufacturer support links",
        "local repair shop finder",
        "tech forum search",
    ],
}


def extract_devices(input_text, profile):
    devices = {m.lower() for m in DEVICE.findall(input_text)}
    if not devices:
        return {}
    return {
        'devices': sorted(set(profile.get('devices', [])) | devices),
        'tech_interest': profile.get('tech_interest', 0) + 1,
    }


class TechSupportTopic:
    name = "tech_support"
    description = "Technology troubleshooting and advice"
    keywords = ["computer", "phone", "wifi", "software", "hardware", "tech", "laptop"]

    patterns = [
        {
            'regex': r"(fix|solve) (wifi|internet)",
            'responses': [
                "Common wifi solutions: %solution",
                "Try these steps: %solution",
                "Network troubleshooting: %solution",
            ],
        },
        {
            'regex': r"(computer|laptop) (is )?(slow|freez)",
            'responses': [
                "Performance fixes: %solution",
                "For faster operation: %solution",
                "Try these optimizations: %solution",
            ],
        },
    ]

    solutions = [
        "restart the router and device",
        "check for system updates",
        "clear cache and temporary files",
        "run an antivirus scan",
        "free up disk space",
    ]

    solution_explanations = {
        "restart the router": "Unplug the router for 30 seconds, plug it back in, wait for the lights to settle, then restart your device.",
        "clear cache": "Remove stored browser or app data from the settings menu; it is rebuilt automatically.",
    }

    deep_knowledge = {
        "safe mode": "A startup mode that loads only essential drivers, useful for telling software faults from hardware ones.",
    }

    follow_up_questions = [
        "Which device is giving you trouble?",
        "When did the problem start?",
    ]

    related_topics = ["time_management"]
    profile_extractors = [extract_devices]

    def generate_response(self, input_text, match_result, context):
        """Escalate repeat problems, give device tips, else use templates."""
        last = context.last_response
        if STILL_BROKEN.search(input_text) and last is not None and self.name in last.topic.split('+'):
            return dict(ESCALATION_RESPONSE, topic=self.name)

        device = DEVICE.search(input_text)
        if device:
            name = device.group(1).lower()
            return {
                'response': f"For {name}: {DEVICE_TIPS[name]}. Also try: %solution",
                'topic': self.name,
            }
        return None


TOPIC = TechSupportTopic()
