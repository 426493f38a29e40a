"""Tool description fragments for system prompt composition."""

TOOL_DESCRIPTIONS = {
    "read_file": "**read_file** - Read a file's full content.",
    "write_file": (
        "**write_file** - Create or overwrite a file.\n"
        "  - Parent folders are created automatically.\n"
        "  - Replaces the whole file. Prefer patch_file for targeted changes."
    ),
    "list_files": "**list_files** - Show the project tree, or the tree under `path`.",
    "delete_file": "**delete_file** - Delete a file or folder.",
    "create_folder": "**create_folder** - Create a folder and any missing parents.",
    "rename_file": "**rename_file** - Rename a file or folder (`old_path` → `new_path`).",
    "copy_file": "**copy_file** - Copy `source_path` to `destination_path`.",
    "move_file": "**move_file** - Move `source_path` to `destination_path`.",
    "search_files": (
        "**search_files** - Case-insensitive text search across files.\n"
        "  - `file_pattern` limits the search by file name, e.g. '*.py' or '*.{js,ts}'."
    ),
    "search_replace": (
        "**search_replace** - Replace a literal string in every matching file.\n"
        "  - Run with `dry_run=true` first to see what would change."
    ),
    "patch_file": (
        "**patch_file** - Replace one exact snippet of a file.\n"
        "  - `old_content` must appear exactly once; add surrounding lines to disambiguate.\n"
        "  - Preserve exact indentation."
    ),
    "insert_at_line": "**insert_at_line** - Insert text before a 1-based line number.",
    "get_file_info": "**get_file_info** - Size, line count and modification time of a file.",
    "regex_replace": (
        "**regex_replace** - Regular-expression replace in one file.\n"
        "  - `flags`: g (all, default), 1 (first only), i (ignore case), m (multiline), s (dotall)."
    ),
    "append_to_file": "**append_to_file** - Add text at the end of a file.",
    "prepend_to_file": "**prepend_to_file** - Add text at the start of a file.",
    "save_memory": (
        "**save_memory** - Remember project knowledge across sessions.\n"
        "  - `category` and `importance` are optional; tags and related files are comma-separated."
    ),
    "recall_memory": "**recall_memory** - Look up a saved memory by key.",
    "list_memories": "**list_memories** - Show saved memories by category.",
    "delete_memory": "**delete_memory** - Forget a saved memory.",
    "update_memory": "**update_memory** - Change a saved memory's value.",
    "create_todo": "**create_todo** - Add a task to the task list.",
    "update_todo": (
        "**update_todo** - Set a task's status: pending, in_progress or completed.\n"
        "  - The id may be shortened to any unique prefix."
    ),
    "list_todos": "**list_todos** - Show the task list.",
    "ask_user": (
        "**ask_user** - Ask the user a question and wait for the answer.\n"
        "  - `options` is an optional comma-separated list of choices."
    ),
    "finish_task": "**finish_task** - Declare the request done, with a short summary.",
    "git_status": "**git_status** - Current branch and changed files.",
    "git_stage": "**git_stage** - Stage comma-separated paths, or 'all'.",
    "git_unstage": "**git_unstage** - Unstage comma-separated paths.",
    "git_commit": "**git_commit** - Commit staged changes with a message.",
    "git_push": "**git_push** - Push to a remote (default origin).",
    "git_pull": "**git_pull** - Pull from a remote (default origin).",
    "git_branch": "**git_branch** - `action` list, create or delete a branch.",
    "git_checkout": "**git_checkout** - Switch branches.",
    "git_log": "**git_log** - Recent commits (default 10).",
    "git_diff": "**git_diff** - Unified diff of unstaged changes, or staged with `staged=true`.",
    "git_discard": "**git_discard** - Throw away uncommitted changes to comma-separated paths.",
}


def format_tool_descriptions(tool_names: list[str]) -> str:
    """Format tool descriptions for inclusion in the system prompt."""
    parts = ["# Available Tools\n"]
    for name in tool_names:
        desc = TOOL_DESCRIPTIONS.get(name, f"**{name}** - Tool")
        parts.append(f"- {desc}")
    return "\n".join(parts)
