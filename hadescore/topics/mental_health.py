"""
Mental health topic: emotional support with a crisis protocol.
"""

import re

CRISIS = re.compile(r"end it all|suicid|kill myself|hurt myself", re.IGNORECASE)

CRISIS_RESPONSE = (
    "I'm very concerned about what you're saying. "
    "Please call or text the Suicide & Crisis Lifeline at 988, "
    "or text HOME to 741741. You're not alone."
)


class MentalHealthTopic:
    name = "mental_health"
    description = "Emotional support and mental health resources"
    keywords = ["depressed", "anxious", "stress", "overwhelmed", "therapy", "counseling"]
    # scores higher while the conversation is negative
    sentiment_bias = -0.7

    patterns = [
        {
            'regex': CRISIS,
            'responses': [CRISIS_RESPONSE],
        },
        {
            'regex': r"(feel|feeling) (depressed|down|sad|hopeless)",
            'responses': [
                "I hear you're feeling %2. %solution",
                "What you're experiencing sounds difficult. %solution",
                "Many people find help with: %solution",
            ],
        },
        {
            'regex': r"(anxiety|anxious|panic)",
            'responses': [
                "Anxiety can feel overwhelming. %solution",
                "When anxiety strikes: %solution",
                "Try this calming technique: %solution",
            ],
        },
    ]

    solutions = [
        "box breathing technique (4-4-4-4)",
        "5-4-3-2-1 grounding exercise",
        "scheduling a therapist appointment",
        "calling a crisis hotline",
        "going for a mindful walk",
    ]

    solution_explanations = {
        "box breathing technique": "Breathe in for 4 seconds, hold for 4, exhale for 4, wait for 4. Repeat 5 times.",
        "5-4-3-2-1 grounding": "Name 5 things you see, 4 you feel, 3 you hear, 2 you smell, 1 you taste.",
    }

    follow_up_questions = [
        "How long have you been feeling this way?",
        "Is there someone you trust that you could talk to this week?",
        "What usually helps you feel a little calmer?",
    ]

    related_topics = ["personal_finance", "time_management"]

    def generate_response(self, input_text, match_result, context):
        if CRISIS.search(input_text):
            return {'response': CRISIS_RESPONSE, 'immediate': True, 'topic': self.name}
        return None


TOPIC = MentalHealthTopic()
