"""Test marking and review collaborators: discovery, prompts, classifiers, probes."""
