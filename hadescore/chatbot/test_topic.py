"""
Unit Tests for Topics
=====================

Topic normalization, registry loading order and freezing, topic graph,
and the loader for Python and YAML topic files.
"""

import random
import re

import pytest

from hadescore.chatbot.topic import (
    DEFAULT_SOLUTION, Pattern, Topic, TopicGraph, TopicLoadError, TopicRegistry,
)
from hadescore.chatbot.topic_loader import TopicLoader, load_builtin_topics
from hadescore.chatbot.dialog_state import ConversationContext


class TestTopicDefinition:
    """Test normalization of mappings and objects into Topic."""

    def test_from_mapping_compiles_patterns_case_insensitive(self):
        topic = Topic.from_definition({
            'name': 'gardening',
            'keywords': ['soil', 'plant'],
            'patterns': [{'regex': r'grow (\w+)', 'responses': ['Growing %1? Try %solution.']}],
            'solutions': ['composting'],
        })

        assert topic.name == 'gardening'
        assert isinstance(topic.patterns[0], Pattern)
        assert topic.patterns[0].regex.search("GROW tomatoes")
        assert topic.priority == 1.0
        assert topic.match is None and topic.generate_response is None

    def test_from_object_picks_up_methods(self):
        class Weather:
            name = "weather"
            keywords = ["rain"]

            def get_solution(self, input_text, context):
                return "carry an umbrella"

        topic = Topic.from_definition(Weather())
        assert topic.pick_solution("rain", ConversationContext(), random.Random(0)) == "carry an umbrella"

    def test_missing_name_raises(self):
        with pytest.raises(TopicLoadError):
            Topic.from_definition({'keywords': ['x']})

    def test_invalid_regex_raises(self):
        with pytest.raises(TopicLoadError) as exc_info:
            Topic.from_definition({'name': 'broken', 'patterns': [{'regex': '(unclosed'}]})
        assert exc_info.value.topic_name == 'broken'

    def test_non_callable_handler_raises(self):
        with pytest.raises(TopicLoadError):
            Topic.from_definition({'name': 'a', 'cross_topic_handlers': {'b': 'not a function'}})

    def test_pick_solution_defaults(self):
        rng = random.Random(1)
        empty = Topic(name="empty")
        assert empty.pick_solution("x", ConversationContext(), rng) == DEFAULT_SOLUTION

        topic = Topic(name="t", solutions=["a", "b", "c"])
        assert topic.pick_solution("x", ConversationContext(), rng) in {"a", "b", "c"}

    def test_default_responses_use_display_name(self):
        assert Topic(name="time_management").get_default_responses() == ["Tell me more about time management."]

    def test_explain_matches_partial_solution(self):
        topic = Topic(
            name="mental_health",
            solution_explanations={"box breathing technique": "Breathe in for 4 seconds."},
        )
        assert topic.explain("box breathing technique (4-4-4-4)") == "Breathe in for 4 seconds."
        assert topic.explain("going for a walk") is None

    def test_extract_profile_merges_extractors(self):
        topic = Topic(
            name="t",
            profile_extractors=[
                lambda text, profile: {'a': 1},
                lambda text, profile: {'b': profile.get('a', 0) + 1},
            ],
        )
        assert topic.extract_profile("hi", {}) == {'a': 1, 'b': 2}

    def test_memory_triggers_fire_on_match(self):
        topic = Topic.from_definition({
            'name': 'finance',
            'memory_triggers': [{'pattern': r'savings', 'store': lambda text: {'text': text}}],
        })
        assert topic.fire_memory_triggers("my savings are low") == [{'text': "my savings are low"}]
        assert topic.fire_memory_triggers("hello") == []

    @pytest.mark.parametrize("patterns", [['foo'], [['foo']], [42]])
    def test_pattern_entries_must_be_mappings(self, patterns):
        with pytest.raises(TopicLoadError) as exc_info:
            Topic.from_definition({'name': 'bad', 'patterns': patterns})
        assert exc_info.value.topic_name == 'bad'

    def test_follow_ups_and_deep_knowledge(self):
        topic = Topic.from_definition({
            'name': 'finance',
            'follow_up_questions': ['What is your biggest expense?'],
            'deep_knowledge': {
                'emergency fund': {'explanation': 'Three months of expenses.'},
                'APR': 'Yearly interest rate.',
            },
        })

        assert topic.follow_up_questions == ['What is your biggest expense?']
        assert topic.explain_term("what is an emergency fund?") == ('emergency fund', 'Three months of expenses.')
        assert topic.explain_term("explain apr") == ('APR', 'Yearly interest rate.')
        assert topic.explain_term("what is a fundraiser") is None

    def test_deep_knowledge_must_be_a_mapping(self):
        with pytest.raises(TopicLoadError):
            Topic.from_definition({'name': 't', 'deep_knowledge': ['apr']})


class TestTopicRegistry:
    """Test registry loading, dependency resolution and freezing."""

    def test_dependency_order(self):
        registry = TopicRegistry.from_definitions([
            {'name': 'child', 'dependencies': ['parent']},
            {'name': 'parent'},
        ])
        assert registry.names() == ['parent', 'child']

    def test_unresolved_dependency_is_dropped(self):
        registry = TopicRegistry.from_definitions([
            {'name': 'orphan', 'dependencies': ['missing']},
            {'name': 'ok'},
        ])
        assert 'orphan' not in registry
        assert 'ok' in registry

    def test_invalid_and_duplicate_definitions_are_skipped(self):
        registry = TopicRegistry.from_definitions([
            {'name': 'a'},
            {'keywords': ['no name']},
            {'name': 'a', 'keywords': ['duplicate']},
        ])
        assert len(registry) == 1
        assert registry.get('a').keywords == []

    def test_frozen_registry_rejects_registration(self):
        registry = TopicRegistry.from_definitions([{'name': 'a'}])
        assert registry.frozen
        with pytest.raises(RuntimeError):
            registry.register(Topic(name='b'))

    def test_duplicate_registration_raises(self):
        registry = TopicRegistry()
        registry.register(Topic(name='a'))
        with pytest.raises(TopicLoadError):
            registry.register(Topic(name='a'))


class TestTopicGraph:
    """Test relatedness from declared links and shared keywords."""

    def test_declared_links_rank_first(self):
        registry = TopicRegistry.from_definitions([
            {'name': 'a', 'keywords': ['shared'], 'related_topics': ['c']},
            {'name': 'b', 'keywords': ['shared']},
            {'name': 'c'},
        ])
        graph = TopicGraph(registry)
        assert graph.related('a') == ['c', 'b']
        assert graph.related('b') == ['a']

    def test_unknown_topics_ignored(self):
        registry = TopicRegistry.from_definitions([{'name': 'a', 'related_topics': ['ghost']}])
        assert TopicGraph(registry).related('a') == []


class TestTopicLoader:
    """Test loading topic files from disk and the built-in package."""

    def test_load_directory_reads_python_and_yaml(self, tmp_path):
        (tmp_path / "cooking.py").write_text(
            "TOPIC = {'name': 'cooking', 'keywords': ['recipe']}\n"
        )
        (tmp_path / "travel.yaml").write_text(
            "name: travel\nkeywords: [flight, hotel]\n"
            "patterns:\n  - regex: 'book (a )?flight'\n    responses: ['Try %solution.']\n"
        )
        (tmp_path / "notes.txt").write_text("ignored")

        loader = TopicLoader()
        topics = loader.load_directory(tmp_path)

        assert sorted(t.name for t in topics) == ['cooking', 'travel']
        assert len(loader.loaded_files) == 2

    def test_broken_file_is_skipped(self, tmp_path):
        (tmp_path / "bad.py").write_text("raise RuntimeError('boom')\n")
        (tmp_path / "empty.py").write_text("x = 1\n")
        (tmp_path / "good.yaml").write_text("name: good\n")

        loader = TopicLoader()
        topics = loader.load_directory(tmp_path)

        assert [t.name for t in topics] == ['good']
        assert len(loader.failed_files) == 2

    def test_missing_directory_returns_nothing(self, tmp_path):
        assert TopicLoader().load_directory(tmp_path / "nope") == []

    def test_builtin_topics(self):
        registry = load_builtin_topics()

        assert set(registry.names()) >= {
            'personal_finance', 'mental_health', 'career_advice', 'tech_support', 'time_management'
        }
        finance = registry.get('personal_finance')
        assert finance.priority == 1.2
        assert finance.generate_response is not None
        assert set(finance.cross_topic_handlers) == {'mental_health', 'career_advice'}
        assert registry.get('mental_health').sentiment_bias == -0.7
        assert registry.get('time_management').generate_response is None
        assert isinstance(finance.patterns[0].regex, re.Pattern)

    def test_malformed_yaml_topic_does_not_stop_loading(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("name: bad\npatterns: ['foo']\n")
        (tmp_path / "good.yaml").write_text("name: good\nkeywords: [soil]\n")

        registry = load_builtin_topics(tmp_path)

        assert 'good' in registry
        assert 'bad' not in registry
        assert 'personal_finance' in registry

    def test_bad_entry_in_topic_list_skips_only_that_entry(self, tmp_path):
        (tmp_path / "several.yaml").write_text(
            "- name: hiking\n  keywords: [trail]\n"
            "- name: broken\n  patterns: ['foo']\n"
            "- name: fishing\n  keywords: [bait]\n"
        )

        loader = TopicLoader()
        topics = loader.load_directory(tmp_path)

        assert [t.name for t in topics] == ['hiking', 'fishing']
        assert loader.failed_files == []

    def test_file_without_valid_topics_counts_as_failed(self, tmp_path):
        (tmp_path / "bad.yaml").write_text("name: bad\npatterns: ['foo']\n")

        loader = TopicLoader()
        assert loader.load_directory(tmp_path) == []
        assert loader.failed_files == [str(tmp_path / "bad.yaml")]
