#!/usr/bin/env python3
"""roadmap CLI entrypoint."""

import argparse
import logging
import os
import sys
from pathlib import Path

from roadmap.commands import feedback as cmd_feedback_module
from roadmap.commands import lock as cmd_lock_module
from roadmap.commands import plan as cmd_plan_module
from roadmap.commands import status as cmd_status_module
from roadmap.commands import validate as cmd_validate_module
from roadmap.lib.config import load_config
from roadmap.lib.constants import ARTIFACT_STATUSES, FEEDBACK_TYPES, STORY_STATUSES, STORY_TYPES
from roadmap.lib.locking import LockContention
from roadmap.lib.store import FileSystemStore, StorageError
from roadmap.lib.validate import ValidationError
from roadmap.pm.lifecycle import InvalidTransition
from roadmap.pm.state import NotFoundError, NotInitializedError, StateManager

logger = logging.getLogger(__name__)

# Exit codes
EXIT_ERROR = 1          # Not found, validation errors, refused transition
EXIT_USAGE = 2          # Bad input, project not initialized
EXIT_LOCKED = 3         # Lock held by someone else


def get_project_dir(args) -> Path:
    """--dir, else $ROADMAP_DIR, else the current directory."""
    if args.dir:
        return Path(args.dir)
    env_dir = os.environ.get("ROADMAP_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd()


def _common_options() -> argparse.ArgumentParser:
    """Options accepted both before and after the subcommand."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                        help='Machine-readable output')
    common.add_argument('--verbose', '-v', action='store_true', default=argparse.SUPPRESS,
                        help='Debug logging')
    common.add_argument('--dir', '-C', default=argparse.SUPPRESS,
                        help='Project directory (default: $ROADMAP_DIR or cwd)')
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog='roadmap',
        description='Planning state for milestones, epics, stories and requirements',
    )
    parser.add_argument('--json', action='store_true', help='Machine-readable output')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--dir', '-C', default=None,
                        help='Project directory (default: $ROADMAP_DIR or cwd)')
    subparsers = parser.add_subparsers(dest='command')

    def add(sub, name, func, help_text):
        p = sub.add_parser(name, help=help_text, parents=[common])
        p.set_defaults(func=func)
        return p

    # roadmap init
    p_init = add(subparsers, 'init', cmd_plan_module.cmd_init, 'Initialize a project')
    p_init.add_argument('name', help='Project name')
    p_init.add_argument('--description', '-d', help='Project description')
    p_init.add_argument('--force', action='store_true', help='Re-create an existing project')

    # roadmap status / validate / coverage
    add(subparsers, 'status', cmd_status_module.cmd_status, 'Show project status')
    add(subparsers, 'validate', cmd_validate_module.cmd_validate,
        'Check references and coverage, write results')
    add(subparsers, 'coverage', cmd_validate_module.cmd_coverage, 'Show requirement coverage')

    # roadmap milestone
    p_milestone = add(subparsers, 'milestone', cmd_plan_module.cmd_milestone_list, 'Manage milestones')
    milestone_sub = p_milestone.add_subparsers(dest='milestone_cmd')
    add(milestone_sub, 'list', cmd_plan_module.cmd_milestone_list, 'List milestones')
    p_ms_add = add(milestone_sub, 'add', cmd_plan_module.cmd_milestone_add, 'Add a milestone')
    p_ms_add.add_argument('name', help='Milestone name')
    p_ms_add.add_argument('--description', '-d', help='Description')
    p_ms_add.add_argument('--order', type=int, help='Position (default: last)')

    # roadmap epic
    p_epic = add(subparsers, 'epic', None, 'Manage epics')
    epic_sub = p_epic.add_subparsers(dest='epic_cmd')
    p_epic_add = add(epic_sub, 'add', cmd_plan_module.cmd_epic_add, 'Add an epic')
    p_epic_add.add_argument('milestone', help='Milestone ID (e.g., M1)')
    p_epic_add.add_argument('name', help='Epic name')
    p_epic_add.add_argument('--description', '-d', help='Description')
    p_epic_add.add_argument('--depends-on', action='append', help='Epic IDs this depends on')
    for name, func, help_text in (
        ('show', cmd_plan_module.cmd_epic_show, 'Show epic details'),
        ('defer', cmd_plan_module.cmd_epic_defer, 'Defer an epic'),
        ('resume', cmd_plan_module.cmd_epic_resume, 'Resume a deferred epic'),
    ):
        p = add(epic_sub, name, func, help_text)
        p.add_argument('epic', help='Epic ID (e.g., E1)')

    # roadmap prd save / roadmap arch save
    for group, func, help_text in (
        ('prd', cmd_plan_module.cmd_prd_save, 'Save an epic PRD'),
        ('arch', cmd_plan_module.cmd_arch_save, 'Save an epic architecture doc'),
    ):
        p_group = add(subparsers, group, None, help_text)
        group_sub = p_group.add_subparsers(dest=f'{group}_cmd')
        p_save = add(group_sub, 'save', func, help_text)
        p_save.add_argument('epic', help='Epic ID')
        p_save.add_argument('--file', '-f', help='Markdown file (default: stdin)')
        p_save.add_argument('--status', choices=ARTIFACT_STATUSES, default='complete')

    # roadmap artifact
    p_artifact = add(subparsers, 'artifact', cmd_plan_module.cmd_artifact_status,
                     'Set an artifact status')
    p_artifact.add_argument('epic', help='Epic ID')
    p_artifact.add_argument('artifact', choices=['prd', 'architecture', 'stories'])
    p_artifact.add_argument('status', choices=ARTIFACT_STATUSES)

    # roadmap story
    p_story = add(subparsers, 'story', None, 'Manage stories')
    story_sub = p_story.add_subparsers(dest='story_cmd')
    p_story_add = add(story_sub, 'add', cmd_plan_module.cmd_story_add, 'Add a story')
    p_story_add.add_argument('epic', help='Epic ID')
    p_story_add.add_argument('title', help='Story title')
    p_story_add.add_argument('--description', '-d', help='Description')
    p_story_add.add_argument('--type', '-t', choices=STORY_TYPES, default='feature')
    p_story_add.add_argument('--requirement', '-r', action='append',
                             help='Requirement ID it implements (repeatable)')
    p_story_add.add_argument('--criterion', action='append', help='Acceptance criterion (repeatable)')
    p_story_add.add_argument('--depends-on', action='append', help='Story IDs this depends on')
    p_story_add.add_argument('--points', type=float, help='Estimate')

    p_story_mark = add(story_sub, 'mark', cmd_plan_module.cmd_story_mark, 'Change story status')
    p_story_mark.add_argument('story', help='Story ID (e.g., E1.S2)')
    p_story_mark.add_argument('status', choices=STORY_STATUSES)
    p_story_mark.add_argument('--reason', help='Why it is blocked')
    p_story_mark.add_argument('--assignee', help='Who is working on it')
    p_story_mark.add_argument('--force', action='store_true',
                              help='Allow a change the lifecycle does not define')

    # roadmap stories save
    p_stories = add(subparsers, 'stories', None, 'Bulk story operations')
    stories_sub = p_stories.add_subparsers(dest='stories_cmd')
    p_stories_save = add(stories_sub, 'save', cmd_plan_module.cmd_stories_save,
                         'Replace an epic\'s stories from JSON')
    p_stories_save.add_argument('epic', help='Epic ID')
    p_stories_save.add_argument('--file', '-f', help='JSON file (default: stdin)')
    p_stories_save.add_argument('--status', choices=ARTIFACT_STATUSES, default='complete')

    # roadmap feedback
    p_feedback = add(subparsers, 'feedback', cmd_feedback_module.cmd_feedback_list,
                     'Manage the feedback queue')
    p_feedback.add_argument('--all', action='store_true', help='Include dismissed items')
    feedback_sub = p_feedback.add_subparsers(dest='feedback_cmd')
    p_fb_list = add(feedback_sub, 'list', cmd_feedback_module.cmd_feedback_list, 'List feedback')
    p_fb_list.add_argument('--all', action='store_true', help='Include dismissed items')
    p_fb_add = add(feedback_sub, 'add', cmd_feedback_module.cmd_feedback_add, 'Add feedback')
    p_fb_add.add_argument('type', choices=FEEDBACK_TYPES)
    p_fb_add.add_argument('summary', help='One-line summary')
    p_fb_add.add_argument('--story', '-s', help='Story the feedback came from')
    p_fb_add.add_argument('--source', choices=['execution', 'review', 'user'], default='user')
    p_fb_add.add_argument('--reported-by', help='Reporter')
    p_fb_add.add_argument('--affects', action='append', help='<type>:<id>, e.g. requirement:E1.R2')
    p_fb_add.add_argument('--action', action='append', help='Suggested action (repeatable)')
    p_fb_resolve = add(feedback_sub, 'resolve', cmd_feedback_module.cmd_feedback_resolve,
                       'Mark feedback incorporated')
    p_fb_resolve.add_argument('id', help='Feedback ID (e.g., FB-001)')
    p_fb_resolve.add_argument('--change', '-c', action='append', help='Change made (repeatable)')
    p_fb_resolve.add_argument('--unblock', action='store_true',
                              help='Move the story it blocked back to todo')
    p_fb_dismiss = add(feedback_sub, 'dismiss', cmd_feedback_module.cmd_feedback_dismiss,
                       'Dismiss feedback')
    p_fb_dismiss.add_argument('id', help='Feedback ID')

    # roadmap stuck
    p_stuck = add(subparsers, 'stuck', cmd_feedback_module.cmd_stuck_list, 'Manage the stuck queue')
    stuck_sub = p_stuck.add_subparsers(dest='stuck_cmd')
    add(stuck_sub, 'list', cmd_feedback_module.cmd_stuck_list, 'List stuck items')
    p_stuck_add = add(stuck_sub, 'add', cmd_feedback_module.cmd_stuck_add, 'Add a stuck item')
    p_stuck_add.add_argument('task', help='Task or story ID')
    p_stuck_add.add_argument('summary', help='What is stuck')
    p_stuck_add.add_argument('--type', default='repeated_failure', help='Kind of problem')
    p_stuck_add.add_argument('--attempt', action='append', help='Approach that was tried (repeatable)')
    p_stuck_add.add_argument('--priority', choices=['low', 'medium', 'high'], default='medium')
    p_stuck_resolve = add(stuck_sub, 'resolve', cmd_feedback_module.cmd_stuck_resolve,
                          'Resolve a stuck item')
    p_stuck_resolve.add_argument('id', help='Stuck ID (e.g., STK-001)')
    p_stuck_resolve.add_argument('resolution', help='How it was resolved')
    p_stuck_resolve.add_argument('--by', choices=['human', 'system'], default='human')

    # roadmap lock
    p_lock = add(subparsers, 'lock', cmd_lock_module.cmd_lock_status, 'Inspect the project lock')
    lock_sub = p_lock.add_subparsers(dest='lock_cmd')
    add(lock_sub, 'status', cmd_lock_module.cmd_lock_status, 'Show the lock')
    p_lock_release = add(lock_sub, 'release', cmd_lock_module.cmd_lock_release, 'Remove the lock')
    p_lock_release.add_argument('--force', action='store_true', help='Release an unexpired lock')

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    func = getattr(args, 'func', None)
    if func is None:
        parser.print_help()
        return EXIT_USAGE

    store = FileSystemStore(get_project_dir(args))
    state = StateManager(store)
    config = load_config(store)

    try:
        return func(args, state, config)
    except NotInitializedError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE
    except LockContention as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("Retry later, or 'roadmap lock release --force' if the holder is gone",
              file=sys.stderr)
        return EXIT_LOCKED
    except (NotFoundError, InvalidTransition, ValidationError, StorageError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    except (ValueError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == '__main__':
    sys.exit(main())
