"""
Personal finance topic: budgeting, savings and money stress.
"""

import re

EMERGENCY = re.compile(r"financial emergency|can'?t pay|eviction", re.IGNORECASE)
MONEY_STRESS = re.compile(r"(money|finance|financial).*(stress|anxiety|anxious|depress)", re.IGNORECASE)
MORE_INCOME = re.compile(r"(need|make|earn) (more|extra) money|\bsalary\b|\braise\b", re.IGNORECASE)
AMOUNT = re.compile(r"\$?(\d{3,})")


def money_stress_handler(input_text, context):
    if not MONEY_STRESS.search(input_text):
        return None
    return {
        'response': (
            "Financial stress affects mental health. Try:\n"
            "1. Separating money worries from self-worth\n"
            "2. Scheduling 'worry time' about finances\n"
            "3. Focusing on controllable factors"
        ),
        'solutions': [
            "gratitude journaling for non-financial positives",
            "free community mental health resources",
        ],
    }


def more_income_handler(input_text, context):
    if not MORE_INCOME.search(input_text):
        return None
    return {
        'response': (
            "To increase income:\n"
            "1. Upskill with free courses\n"
            "2. Negotiate your current salary\n"
            "3. Explore side gigs"
        ),
        'solutions': [
            "Coursera financial aid options",
            "freelance marketplace profiles",
        ],
    }


def extract_income(input_text, profile):
    match = AMOUNT.search(input_text)
    if not match:
        return {}
    return {
        'income_range': 'medium' if int(match.group(1)) > 2000 else 'low',
        'financial_mentions': profile.get('financial_mentions', 0) + 1,
    }


def savings_mention(input_text):
    return {'type': 'savings_mention', 'text': input_text}


class PersonalFinanceTopic:
    name = "personal_finance"
    description = "Money management with links to career and wellbeing"
    keywords = ["money", "finance", "debt", "savings", "income", "budget"]
    priority = 1.2

    patterns = [
        {
            'regex': EMERGENCY,
            'responses': ["Money emergencies are stressful. Start with %solution."],
        },
        {
            'regex': r"I need (?:help|advice) with (.*)",
            'responses': ["For %1, try these steps: %solution"],
        },
        {
            'regex': r"(no|low|out of|need) money",
            'responses': [
                "Financial stress is common. %solution might help.",
                "When funds are low, consider %solution.",
                "For money issues, %solution could be useful.",
            ],
        },
    ]

    solutions = [
        "tracking all expenses for a week",
        "creating a 50-30-20 budget plan",
        "setting up automatic savings transfers",
    ]

    solution_explanations = {
        "50-30-20 budget": "Put 50% of take-home pay toward needs, 30% toward wants and 20% toward savings or debt.",
        "tracking all expenses": "Write down every purchase for seven days, then group them to see where the money goes.",
        "automatic savings transfers": "Schedule a transfer to savings for the day after payday so saving happens first.",
    }

    cross_topic_handlers = {
        'mental_health': money_stress_handler,
        'career_advice': more_income_handler,
    }

    deep_knowledge = {
        "emergency fund": "Cash set aside for surprises such as a car repair or job loss, ideally three to six months of essential expenses.",
        "compound interest": "Interest earned on earlier interest; the longer money stays saved, the faster it grows.",
        "credit score": "A number lenders use to judge how reliably you repay debt. Paying on time and keeping balances low raise it.",
    }

    follow_up_questions = [
        "What is your biggest monthly expense right now?",
        "Do you have any savings set aside for emergencies?",
        "Would a simple weekly budget help you most?",
    ]

    related_topics = ["career_advice", "mental_health", "time_management"]
    profile_extractors = [extract_income]
    memory_triggers = [{'pattern': r"\b(save|saving|savings)\b", 'store': savings_mention}]

    def generate_response(self, input_text, match_result, context):
        """Crisis resources for financial emergencies; otherwise the template path."""
        if EMERGENCY.search(input_text):
            return {
                'response': (
                    "For immediate financial crisis support:\n"
                    "1. Contact 211 for local resources\n"
                    "2. Reach out to community or religious organizations\n"
                    "3. Apply for emergency assistance"
                ),
                'immediate': True,
                'topic': self.name,
            }
        return None


TOPIC = PersonalFinanceTopic()
