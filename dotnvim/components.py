"""Static install strategy for every tracked component."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ComponentSpec:
    """How to probe and install one component.

    `packages` and `downloads` are keyed by OS family. Download URLs may use
    the `{arch}` placeholder.
    """

    name: str
    display_name: str
    commands: tuple[str, ...] = ()
    packages: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    downloads: Mapping[str, str] = field(default_factory=dict)
    group: str | None = None
    critical: bool = False


COMPONENT_SPECS = {
    spec.name: spec
    for spec in (
        ComponentSpec(
            "neovim_check",
            "Neovim",
            commands=("nvim",),
            packages={"macos": ("neovim",)},
            critical=True,
        ),
        ComponentSpec(
            "git_install",
            "Git",
            commands=("git",),
            packages={"linux": ("git",), "macos": ("git",)},
            critical=True,
        ),
        ComponentSpec(
            "yq_install",
            "yq",
            commands=("yq",),
            packages={"macos": ("yq",)},
            downloads={
                "linux": "https://github.com/mikefarah/yq/releases/latest/download/yq_linux_{arch}",
            },
            critical=True,
        ),
        ComponentSpec(
            "jq_install",
            "jq",
            commands=("jq",),
            packages={"linux": ("jq",), "macos": ("jq",)},
        ),
        ComponentSpec(
            "ripgrep_install",
            "Ripgrep",
            commands=("rg",),
            packages={"linux": ("ripgrep",), "macos": ("ripgrep",)},
            group="deps",
        ),
        ComponentSpec(
            "fd_install",
            "fd",
            commands=("fd",),
            packages={"linux": ("fd-find",), "macos": ("fd",)},
            group="deps",
        ),
        ComponentSpec(
            "fzf_install",
            "fzf",
            commands=("fzf",),
            packages={"macos": ("fzf",)},
            group="deps",
        ),
        ComponentSpec(
            "node_install",
            "Node.js",
            commands=("node",),
            packages={"linux": ("nodejs", "npm"), "macos": ("node",)},
            group="node",
        ),
        ComponentSpec(
            "python_install",
            "Python3",
            commands=("python3",),
            packages={"linux": ("python3", "python3-pip"), "macos": ("python",)},
            group="python",
        ),
        ComponentSpec(
            "lua_install",
            "Lua",
            commands=("lua", "lua5.1"),
            packages={"linux": ("lua5.1",), "macos": ("lua",)},
            group="lua",
        ),
        ComponentSpec(
            "luarocks_install",
            "LuaRocks",
            commands=("luarocks",),
            packages={"linux": ("luarocks",), "macos": ("luarocks",)},
            group="lua",
        ),
        ComponentSpec("fonts_install", "JetBrains Mono", group="fonts"),
        ComponentSpec("config_backup", "Config Backup", group="backup"),
        ComponentSpec("config_install", "Config Install"),
        ComponentSpec("lazyvim_install", "Lazy.nvim"),
        ComponentSpec("plugins_install", "Plugins", group="plugins"),
        ComponentSpec(
            "lazygit_install",
            "LazyGit",
            commands=("lazygit",),
            packages={"linux": ("lazygit",), "macos": ("lazygit",)},
            group="lazygit",
        ),
        ComponentSpec(
            "tmux_install",
            "Tmux",
            commands=("tmux",),
            packages={"linux": ("tmux",), "macos": ("tmux",)},
            group="tmux",
        ),
    )
}

SKIP_GROUPS: dict[str, tuple[str, ...]] = {}
for _spec in COMPONENT_SPECS.values():
    if _spec.group:
        SKIP_GROUPS.setdefault(_spec.group, ())
        SKIP_GROUPS[_spec.group] += (_spec.name,)

SKIP_GROUP_HELP = {
    "deps": "Skip ripgrep, fd and fzf",
    "node": "Skip Node.js installation",
    "python": "Skip Python3 installation",
    "lua": "Skip Lua and LuaRocks installation",
    "fonts": "Skip JetBrains Mono font installation",
    "backup": "Do not back up the existing configuration (it is deleted instead)",
    "plugins": "Skip automatic plugin installation",
    "lazygit": "Skip LazyGit installation",
    "tmux": "Skip tmux and its configuration",
}
