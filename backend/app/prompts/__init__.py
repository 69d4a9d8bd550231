from pathlib import Path
from typing import Dict, Union

PromptTree = Dict[str, Union[str, "PromptTree"]]


def load_prompts(prompts_dir: Path = Path(__file__).parent) -> Dict[str, PromptTree]:
    """Load prompt templates, keyed by role ("system"/"user") and subfolder."""
    prompts: Dict[str, PromptTree] = {"system": {}, "user": {}}

    def load_directory(base_dir: Path) -> PromptTree:
        tree: PromptTree = {}
        for entry in sorted(base_dir.iterdir()):
            if entry.is_dir():
                tree[entry.name] = load_directory(entry)
            elif entry.is_file() and entry.suffix == ".txt":
                if entry.stem in tree:
                    raise ValueError(
                        f"Duplicate prompt name: {entry.stem} in {entry.parent}"
                    )
                tree[entry.stem] = entry.read_text(encoding="utf-8").strip()
        return tree

    for role in prompts:
        role_dir = prompts_dir / role
        if role_dir.exists():
            prompts[role] = load_directory(role_dir)

    return prompts


def get_prompt(role: str, *path: str) -> str:
    """Look up a single template, e.g. get_prompt("user", "tutor", "hint_mode")."""
    node: Union[str, PromptTree] = PROMPTS[role]
    for key in path:
        if not isinstance(node, dict) or key not in node:
            raise KeyError(f"Unknown prompt: {role}/{'/'.join(path)}")
        node = node[key]
    if not isinstance(node, str):
        raise KeyError(f"Prompt path is a folder, not a template: {role}/{'/'.join(path)}")
    return node


PROMPTS = load_prompts()
