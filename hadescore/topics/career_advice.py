"""
Career advice topic: resumes, interviews and salary.
"""

import re

SALARY = re.compile(r"salary|raise|negotiat", re.IGNORECASE)
INDUSTRY = re.compile(r"\b(?:work|working|job) in (tech|healthcare)\b", re.IGNORECASE)

INDUSTRY_DATA = {
    'tech': "average 10-15% salary growth when changing jobs",
    'healthcare': "clinical roles see 5-7% annual raises",
}


def salary_handler(input_text, context):
    if not SALARY.search(input_text):
        return None
    return {
        'response': (
            "For salary negotiations:\n"
            "1. Research market rates\n"
            "2. Highlight your value\n"
            "3. Practice your talking points\n"
            "Would you like industry-specific salary data?"
        ),
        'solutions': [
            "Glassdoor research",
            "salary calculator tools",
            "negotiation script templates",
        ],
    }


def extract_industry(input_text, profile):
    match = INDUSTRY.search(input_text)
    return {'industry': match.group(1).lower()} if match else {}


class CareerAdviceTopic:
    name = "career_advice"
    description = "Career development and job search guidance"
    keywords = ["job", "career", "resume", "interview", "promotion", "salary"]

    patterns = [
        {
            'regex': r"(improve|better) (resume|CV)",
            'responses': [
                "Strong resumes often: %solution",
                "For better resumes: %solution",
                "Try this resume tip: %solution",
            ],
        },
        {
            'regex': r"(answer|handle) interview (question|questions)",
            'responses': [
                "Interview success comes from: %solution",
                "For tough questions: %solution",
                "Try this strategy: %solution",
            ],
        },
    ]

    solutions = [
        "quantify achievements with numbers",
        "use the STAR method for behavioral questions",
        "research company values before interviewing",
        "negotiate salary using market data",
        "develop a 30-60-90 day plan for promotions",
    ]

    solution_explanations = {
        "STAR method": "Describe the Situation, the Task, the Action you took and the Result, in that order.",
        "30-60-90 day plan": "List what you will learn in 30 days, contribute by 60 and own by 90.",
    }

    deep_knowledge = {
        "informational interview": "A short, low-pressure chat with someone in a role you want, to learn how they got there.",
        "market data": "Salary ranges for your role and city from surveys or job postings, used to anchor a negotiation.",
    }

    follow_up_questions = [
        "What kind of role are you aiming for next?",
        "When did you last update your resume?",
        "Do you have an interview coming up?",
    ]

    cross_topic_handlers = {'personal_finance': salary_handler}
    related_topics = ["personal_finance", "time_management"]
    profile_extractors = [extract_industry]

    def get_solution(self, input_text, context):
        """Industry-specific advice when the profile names a known industry."""
        industry = (context.user_profile.get('industry') or '').lower()
        if industry in INDUSTRY_DATA:
            return f"{self.solutions[0]} ({INDUSTRY_DATA[industry]})"
        return None


TOPIC = CareerAdviceTopic()
