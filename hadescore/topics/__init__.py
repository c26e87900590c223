"""
Built-in topics. Python modules expose ``TOPIC``; YAML files hold
data-only topics and are picked up by ``TopicLoader.load_package``.
"""
