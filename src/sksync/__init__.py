"""SKSync — Sovereign Skill Sync.

Pulls skills (files, folders, whole repositories, gists) from remote
sources into a local content store and fans them out to agent skill
directories as symlinks.
"""

__version__ = "0.1.0"

SKILLS_PATH = "~/.agents/skills"
