"""Built-in slash commands, discovered by the registry."""
