"""The tool-call loop, the tool registry and the prompts it uses."""
