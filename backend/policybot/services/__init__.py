"""
Services package

Import submodules directly (``policybot.services.chat``,
``policybot.services.llm``, ...) to keep import order acyclic.
"""
