"""Command-line interface for inboxrules."""

import asyncio
import json
import sqlite3
from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from . import __version__, db
from .config import Config, get_config_dir
from .errors import InboxRulesError, ValidationError
from .logging import setup_logging
from .matching import AIRuleChooser, MatchingEngine
from .matching.ai import check_ai_connection
from .matching.evaluator import DETERMINISTIC_ORDER
from .matching.providers import SUPPORTED_PROVIDERS
from .models import (
    ActionType,
    CategoryFilterType,
    ConditionType,
    GroupItemType,
    LogicalOperator,
    MatchResult,
    Message,
    Rule,
    RuleAction,
    User,
)
from .store import SqliteRuleStore
from .theme import console

USER_OPTION = click.option("--user", "user_email", help="User email (defaults to the configured user)")


@click.group()
@click.version_option(version=__version__, prog_name="inboxrules")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
def main(verbose: bool, json_logs: bool):
    """inboxrules - pick the automation rule that governs each incoming email."""
    setup_logging(verbose=verbose, json_format=json_logs)


def _resolve_user(user_email: Optional[str]) -> Optional[User]:
    """Find the user a command acts for, printing an error if there is none."""
    db.init_db()
    email = user_email or Config.load().matching.default_user
    if not email:
        console.print("[error]No user selected. Run 'inboxrules init --email <address>' or pass --user.[/error]")
        return None

    user = db.get_user_by_email(email)
    if user is None:
        console.print(f"[error]Unknown user: {email}[/error]")
    return user


def _format_condition_types(rule: Rule) -> str:
    order = (*DETERMINISTIC_ORDER, ConditionType.AI)
    types = [f"[{t.value.lower()}]{t.value}[/{t.value.lower()}]" for t in order if t in rule.condition_types]
    return ", ".join(types) or "[muted]none[/muted]"


@main.command()
@click.option("--email", help="Create this user and make it the default")
@click.option("--about", help="Free-text description of the user for the AI")
def init(email: Optional[str], about: Optional[str]):
    """Create the config and database."""
    config = Config.load()
    db.init_db()

    if email:
        user = db.get_user_by_email(email)
        if user is None:
            user = db.add_user(email, about=about)
            console.print(f"[success]✓ Created user {user.email}[/success]")
        config.matching.default_user = user.email

    config.save()
    console.print(f"[success]✓ Configuration saved to {get_config_dir()}[/success]")


@main.group()
def user():
    """Manage users."""
    pass


@user.command("add")
@click.argument("email")
@click.option("--about", help="Free-text description of the user for the AI")
def user_add(email: str, about: Optional[str]):
    """Add a user."""
    db.init_db()
    try:
        created = db.add_user(email, about=about)
    except sqlite3.IntegrityError:
        console.print(f"[error]User already exists: {email}[/error]")
        return
    console.print(f"[success]✓ Added user {created.email}[/success]")


@main.group()
def category():
    """Manage sender categories."""
    pass


@category.command("add")
@click.argument("name")
@click.option("--description", help="What senders in this category look like")
@USER_OPTION
def category_add(name: str, description: Optional[str], user_email: Optional[str]):
    """Add a sender category."""
    current = _resolve_user(user_email)
    if current is None:
        return
    try:
        db.add_category(current.id, name, description)
    except sqlite3.IntegrityError:
        console.print(f"[error]Category already exists: {name}[/error]")
        return
    console.print(f"[success]✓ Added category {name}[/success]")


@category.command("assign")
@click.argument("sender")
@click.argument("name")
@USER_OPTION
def category_assign(sender: str, name: str, user_email: Optional[str]):
    """Assign a category to a sender address. Use 'none' to clear it."""
    current = _resolve_user(user_email)
    if current is None:
        return

    category_id = None
    if name.lower() != "none":
        found = db.get_category_by_name(current.id, name)
        if found is None:
            console.print(f"[error]Unknown category: {name}[/error]")
            return
        category_id = found.id

    db.set_sender_category(current.id, sender, category_id)
    console.print(f"[success]✓ {sender} → {name}[/success]")


@main.group()
def rule():
    """Manage rules."""
    pass


@rule.command("add")
@click.argument("name")
@click.option("--from", "from_", help="Regex tested against the From header")
@click.option("--to", help="Regex tested against the To header")
@click.option("--subject", help="Regex tested against the subject")
@click.option("--body", help="Regex tested against the plain-text body")
@click.option("--instructions", help="Plain-language instructions for the AI")
@click.option(
    "--operator",
    type=click.Choice(["and", "or"], case_sensitive=False),
    default="and",
    show_default=True,
    help="How condition types combine",
)
@click.option("--run-on-threads", is_flag=True, help="Also apply to replies in a thread")
@click.option("--include", "include", multiple=True, help="Only senders in this category")
@click.option("--exclude", "exclude", multiple=True, help="Skip senders in this category")
@click.option(
    "--action",
    "action_types",
    multiple=True,
    type=click.Choice([a.value for a in ActionType]),
    help="Action to take when the rule wins",
)
@click.option("--label", help="Label used by label actions")
@USER_OPTION
def rule_add(
    name: str,
    from_: Optional[str],
    to: Optional[str],
    subject: Optional[str],
    body: Optional[str],
    instructions: Optional[str],
    operator: str,
    run_on_threads: bool,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    action_types: tuple[str, ...],
    label: Optional[str],
    user_email: Optional[str],
):
    """Add a rule at the end of the priority list.

    Example: inboxrules rule add Receipts --subject "receipt|invoice" --action label --label Receipts
    """
    current = _resolve_user(user_email)
    if current is None:
        return

    if include and exclude:
        console.print("[error]Use either --include or --exclude, not both.[/error]")
        return

    filter_type = None
    category_ids = []
    if include or exclude:
        filter_type = CategoryFilterType.INCLUDE if include else CategoryFilterType.EXCLUDE
        for category_name in include or exclude:
            found = db.get_category_by_name(current.id, category_name)
            if found is None:
                console.print(f"[error]Unknown category: {category_name}[/error]")
                return
            category_ids.append(found.id)

    actions = [
        RuleAction(type=ActionType(a), label=label if a == ActionType.LABEL.value else None)
        for a in action_types
    ]

    try:
        created = db.add_rule(
            current.id,
            name,
            from_=from_,
            to=to,
            subject=subject,
            body=body,
            instructions=instructions,
            operator=LogicalOperator(operator.upper()),
            run_on_threads=run_on_threads,
            category_filter_type=filter_type,
            category_ids=category_ids,
            actions=actions,
        )
    except ValidationError as e:
        console.print(f"[error]{e.message}: {escape(e.details.get('pattern', ''))}[/error]")
        return
    except sqlite3.IntegrityError:
        console.print(f"[error]A rule named '{name}' already exists.[/error]")
        return

    console.print(f"[success]✓ Added rule {created.name} ({created.id})[/success]")
    if not created.condition_types:
        console.print("[warning]This rule has no conditions and will never match.[/warning]")


@rule.command("remove")
@click.argument("rule_id")
def rule_remove(rule_id: str):
    """Remove a rule."""
    db.init_db()
    if db.delete_rule(rule_id):
        console.print(f"[success]✓ Removed rule {rule_id}[/success]")
    else:
        console.print(f"[error]No rule with id {rule_id}[/error]")


@main.command()
@USER_OPTION
def rules(user_email: Optional[str]):
    """List rules in priority order."""
    current = _resolve_user(user_email)
    if current is None:
        return

    rules_list = db.get_rules(current.id, include_disabled=True)
    if not rules_list:
        console.print("No rules configured.")
        console.print("Add rules with: [bold]inboxrules rule add <name> ...[/bold]")
        return

    table = Table(show_header=True, header_style="header")
    table.add_column("#")
    table.add_column("ID", style="muted")
    table.add_column("Name", style="rule")
    table.add_column("Conditions")
    table.add_column("Operator")
    table.add_column("Threads")
    table.add_column("Actions")

    for r in rules_list:
        table.add_row(
            str(r.position),
            r.id,
            escape(r.name) if r.enabled else f"[muted]{escape(r.name)} (disabled)[/muted]",
            _format_condition_types(r),
            r.conditional_operator.value,
            "yes" if r.run_on_threads else "no",
            ", ".join(a.type.value for a in r.actions),
        )

    console.print(table)


@main.group()
def group():
    """Manage rule groups."""
    pass


@group.command("add-item")
@click.argument("rule_id")
@click.argument("item_type", type=click.Choice([t.value for t in GroupItemType]))
@click.argument("value")
def group_add_item(rule_id: str, item_type: str, value: str):
    """Add an item to a rule's group, creating the group if needed.

    Example: inboxrules group add-item <rule-id> from alice@example.com
    """
    db.init_db()
    target = db.get_rule(rule_id)
    if target is None:
        console.print(f"[error]No rule with id {rule_id}[/error]")
        return

    rule_group = db.get_group_for_rule(rule_id)
    if rule_group is None:
        rule_group = db.add_group(target.user_id, f"{target.name} group", rule_id=rule_id)

    try:
        db.add_group_item(rule_group.id, GroupItemType(item_type), value)
    except sqlite3.IntegrityError:
        console.print(f"[warning]{item_type}: {value} is already in the group[/warning]")
        return
    console.print(f"[success]✓ Added {item_type}: {value} to {rule_group.name}[/success]")


def _print_result(result: MatchResult) -> None:
    if result.rule is None:
        console.print("[muted]No rule matched.[/muted]")
        if result.reason:
            console.print(f"  Reason: {escape(result.reason)}")
        return

    console.print(f"Matched rule: [rule]{escape(result.rule.name)}[/rule] [muted]({result.rule.id})[/muted]")
    console.print(f"  Via: [{result.source}]{result.source}[/{result.source}]")
    console.print(f"  Reason: {escape(result.reason or '')}")
    if result.rule.actions:
        console.print(f"  Actions: {', '.join(a.type.value for a in result.rule.actions)}")


@main.command()
@click.argument("message_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--no-ai", is_flag=True, help="Only evaluate deterministic conditions")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@USER_OPTION
def match(message_file: str, no_ai: bool, as_json: bool, user_email: Optional[str]):
    """Find the rule that applies to a message stored as JSON."""
    current = _resolve_user(user_email)
    if current is None:
        return

    with open(message_file) as f:
        try:
            message = Message.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError) as e:
            console.print(f"[error]Invalid message file: {e}[/error]")
            raise SystemExit(1) from e

    config = Config.load()
    chooser = None
    if not no_ai and config.matching.run_ai and config.is_ai_configured():
        chooser = AIRuleChooser(config)

    engine = MatchingEngine(SqliteRuleStore(), chooser)
    rules_list = db.get_rules(current.id)

    try:
        result = asyncio.run(engine.find_matching_rule(rules_list, message, current))
    except InboxRulesError as e:
        console.print(f"[error]Matching failed: {e}[/error]")
        raise SystemExit(1) from e

    if as_json:
        output = {}
        if result.rule is not None:
            output = {
                "rule": {"id": result.rule.id, "name": result.rule.name},
                "reason": result.reason,
                "source": result.source,
            }
        click.echo(json.dumps(output))
        return

    _print_result(result)


@main.command("config")
@click.option("--show", is_flag=True, help="Show current config")
@click.option("--ai", type=click.Choice(["on", "off"]), help="Enable/disable the AI chooser")
@click.option("--provider", type=click.Choice(list(SUPPORTED_PROVIDERS)), help="Set AI provider")
@click.option("--test", "test_ai", is_flag=True, help="Check the AI provider connection")
def config_cmd(show: bool, ai: Optional[str], provider: Optional[str], test_ai: bool):
    """View or modify configuration."""
    config = Config.load()

    if ai:
        config.ai.enabled = ai == "on"
        config.save()
        console.print(f"AI: {'enabled' if config.ai.enabled else 'disabled'}")

    if provider:
        config.ai.provider = provider
        config.save()
        console.print(f"Provider: {provider}")

    if test_ai:
        with console.status("Testing AI connection..."):
            ok, detail = asyncio.run(check_ai_connection(config))
        style = "success" if ok else "error"
        console.print(f"[{style}]{detail}[/{style}]")
        return

    if show or (not ai and not provider):
        console.print("\n[header]Current Configuration[/header]")
        console.print(f"  Config dir: {get_config_dir()}")
        console.print(f"  Default user: {config.matching.default_user or '-'}")
        console.print(f"  AI enabled: {config.ai.enabled}")
        info = SUPPORTED_PROVIDERS.get(config.ai.provider)
        console.print(f"  AI provider: {info.label if info else config.ai.provider}")
        if info and info.requires_key:
            key_status = "set" if config.ai.api_key else f"missing (set {info.key_env})"
            console.print(f"  API key: {key_status}")
        console.print(f"  AI model: {config.ai.model or 'provider default'}")
        console.print(f"  AI timeout: {config.ai.timeout}s")


if __name__ == "__main__":
    main()
