"""FUN FARM CLI -- operate the reward ledger and anti-abuse policy."""

import logging

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from funfarm import __version__

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--home", default=None, envvar="FUNFARM_HOME", help="Store directory (default ~/.funfarm)")
@click.option("--verbose", "-v", is_flag=True, help="Log engine decisions")
@click.pass_context
def main(ctx: click.Context, home: str | None, verbose: bool):
    """FUN FARM rewards -- CAMLY reward ledger and anti-abuse policy.

    Evaluate actions for rewards, record violations, sweep inactive bans
    and review quality-post bonus requests.
    """
    from funfarm.config import load_settings

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = load_settings(home)


def _engine(ctx: click.Context):
    from funfarm.config import build_engine

    try:
        return build_engine(ctx.obj)
    except (OSError, ValueError) as e:
        raise click.ClickException(str(e))


def _account_or_fail(engine, account_id: str):
    account = engine.accounts.find(account_id)
    if account is None:
        raise click.ClickException(f"Account '{account_id}' not found")
    return account


# ── Policy ───────────────────────────────────────────────────────────


@main.group()
def policy():
    """Inspect the reward policy."""


@policy.command(name="show")
@click.option("--policy-file", "-p", default=None, help="YAML policy to show instead of the active one")
@click.pass_context
def show_policy(ctx: click.Context, policy_file: str | None):
    """Print amounts, daily limits and thresholds."""
    from funfarm.config import resolve_policy
    from funfarm.policy.config import load_policy

    active = load_policy(policy_file) if policy_file else resolve_policy(ctx.obj)

    table = Table(title=f"Reward policy v{active.version}")
    table.add_column("Action", style="cyan")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Daily limit", justify="right")
    table.add_column("Cap exempt", justify="center")
    for action, amount in active.amounts.items():
        limit = active.daily_limit_for(action)
        table.add_row(
            action.value,
            f"{amount:,}",
            "-" if limit is None else str(limit),
            "[green]Y[/]" if active.is_cap_exempt(action) else "",
        )
    console.print(table)
    console.print(f"  Daily reward cap: [bold]{active.daily_reward_cap:,}[/]")
    console.print(
        f"  Quality: post > {active.min_post_chars} chars + media, "
        f"comment > {active.min_comment_chars} chars, "
        f"livestream >= {active.min_livestream_minutes} min"
    )
    console.print(
        f"  Suspensions: {active.first_suspension_days}d / {active.extended_suspension_days}d, "
        f"permanent at level {active.permanent_ban_level}, "
        f"inactivity promotion after {active.inactive_ban_days}d"
    )


# ── Accounts ─────────────────────────────────────────────────────────


@main.group()
def account():
    """Create and inspect accounts."""


@account.command(name="create")
@click.argument("account_id")
@click.pass_context
def create_account(ctx: click.Context, account_id: str):
    """Create a clean account."""
    engine = _engine(ctx)
    try:
        engine.accounts.create(account_id)
    except ValueError as e:
        raise click.ClickException(str(e))
    console.print(f"  Created account [cyan]{account_id}[/]")


@account.command(name="show")
@click.argument("account_id")
@click.pass_context
def show_account(ctx: click.Context, account_id: str):
    """Show balances, violation level and ban state."""
    from funfarm.policy.models import utcnow

    engine = _engine(ctx)
    acct = _account_or_fail(engine, account_id)

    if acct.is_permanently_banned:
        state = "[red]permanently banned[/]"
    elif acct.violation_level >= 2 and acct.suspension_active(utcnow()):
        state = f"[yellow]suspended until {acct.ban_expires_at:%Y-%m-%d %H:%M}[/]"
    elif acct.violation_level == 1:
        state = "[yellow]warned[/]"
    else:
        state = "[green]clean[/]"

    lines = [
        f"Pending reward:    {acct.pending_reward:,}",
        f"Confirmed balance: {acct.confirmed_balance:,}",
        f"Violation level:   {acct.violation_level}",
        f"State:             {state}",
        f"Good Heart:        {'yes' if acct.is_good_heart else 'no'}",
    ]
    if acct.ban_reason:
        lines.append(f"Ban reason:        {acct.ban_reason}")
    console.print(Panel("\n".join(lines), title=f"Account {acct.id}"))


# ── Rewards ──────────────────────────────────────────────────────────


@main.group()
def reward():
    """Evaluate actions for rewards."""


@reward.command(name="evaluate")
@click.argument("account_id")
@click.argument("action", type=click.Choice(
    ["post", "like", "comment", "share", "friendship", "livestream", "welcome", "wallet_connect"]
))
@click.option("--target", "-t", default="", help="Post id, counterpart user id, ...")
@click.option("--text", default="", help="Post or comment text")
@click.option("--images", default=0, type=int, help="Number of attached images")
@click.option("--video", is_flag=True, help="Post has a video")
@click.option("--post-type", default="post", help="post | product | share")
@click.option("--minutes", default=0, type=int, help="Livestream duration")
@click.option("--owner", default="", help="Author of the target post")
@click.pass_context
def evaluate(
    ctx: click.Context,
    account_id: str,
    action: str,
    target: str,
    text: str,
    images: int,
    video: bool,
    post_type: str,
    minutes: int,
    owner: str,
):
    """Decide whether ACTION by ACCOUNT_ID earns a reward."""
    from funfarm.ledger.errors import StoreUnavailable
    from funfarm.policy.models import ActionContent

    engine = _engine(ctx)
    _account_or_fail(engine, account_id)
    content = ActionContent(
        text=text,
        image_count=images,
        has_video=video,
        post_type=post_type,
        duration_minutes=minutes,
        target_owner_id=owner,
    )
    try:
        decision = engine.evaluate_action(account_id, action, target or None, content=content)
    except StoreUnavailable as e:
        raise click.ClickException(f"No decision made: {e}")

    if decision.granted:
        console.print(
            f"  [green]+{decision.amount:,} CAMLY[/] for {action} "
            f"(pending {decision.pending_total:,})"
        )
    else:
        console.print(f"  [yellow]No reward[/] [{decision.rejection.value}] {decision.reason}")


# ── Violations ───────────────────────────────────────────────────────


@main.group()
def violation():
    """Record violations and manage bans."""


@violation.command(name="record")
@click.argument("account_id")
@click.argument("reason")
@click.option("--severe", is_flag=True, help="Ban permanently regardless of level")
@click.pass_context
def record_violation(ctx: click.Context, account_id: str, reason: str, severe: bool):
    """Record one violation by ACCOUNT_ID."""
    engine = _engine(ctx)
    _account_or_fail(engine, account_id)
    acct = engine.record_violation(account_id, reason, severe=severe)

    if acct.is_permanently_banned:
        console.print(f"  [red]BANNED[/] {account_id} (level {acct.violation_level})")
    elif acct.violation_level >= 2:
        console.print(
            f"  [yellow]SUSPENDED[/] {account_id} until {acct.ban_expires_at:%Y-%m-%d} "
            f"(level {acct.violation_level})"
        )
    else:
        console.print(f"  [yellow]WARNED[/] {account_id} (level {acct.violation_level})")


@violation.command(name="list")
@click.argument("account_id")
@click.pass_context
def list_violations(ctx: click.Context, account_id: str):
    """List violation records for ACCOUNT_ID."""
    engine = _engine(ctx)
    records = engine.violations.list_for(account_id)
    if not records:
        console.print("[green]No violations recorded.[/]")
        return

    table = Table(title=f"Violations for {account_id}")
    table.add_column("When", style="dim")
    table.add_column("Level", justify="right")
    table.add_column("Expires")
    table.add_column("Reason")
    for r in records:
        expires = "permanent" if r.expires_at is None else f"{r.expires_at:%Y-%m-%d %H:%M}"
        table.add_row(f"{r.created_at:%Y-%m-%d %H:%M}", str(r.violation_count), expires, r.reason[:60])
    console.print(table)


@violation.command(name="pardon")
@click.argument("account_id")
@click.pass_context
def pardon(ctx: click.Context, account_id: str):
    """Clear violations and bans for ACCOUNT_ID."""
    engine = _engine(ctx)
    _account_or_fail(engine, account_id)
    engine.pardon(account_id)
    console.print(f"  [green]Pardoned[/] {account_id}")


@main.command()
@click.pass_context
def sweep(ctx: click.Context):
    """Promote suspensions with no activity to permanent bans."""
    engine = _engine(ctx)
    result = engine.sweep_inactive_bans()

    console.print(Panel(
        f"Checked: {result.checked}\n"
        f"Promoted: {len(result.promoted)}\n"
        f"Still suspended: {len(result.still_suspended)}\n"
        f"Failed: {len(result.failed)}\n"
        f"Activity rows pruned: {result.pruned}",
        title="Inactivity sweep",
    ))
    for account_id in result.promoted:
        console.print(f"  [red]PERMANENT[/] {account_id}")
    for account_id in result.failed:
        console.print(f"  [yellow]SKIPPED[/] {account_id}")


@main.command(name="good-heart")
@click.pass_context
def good_heart(ctx: click.Context):
    """Grant the Good Heart badge to accounts clean long enough."""
    engine = _engine(ctx)
    awarded = engine.award_good_hearts()
    if not awarded:
        console.print("[yellow]No new Good Heart badges.[/]")
        return
    for account_id in awarded:
        console.print(f"  [magenta]Good Heart[/] {account_id}")


# ── Bonus requests ───────────────────────────────────────────────────


@main.group()
def bonus():
    """Quality-post bonus requests."""


@bonus.command(name="submit")
@click.argument("post_id")
@click.argument("user_id")
@click.option("--text", default="", help="Post body")
@click.option("--images", default=0, type=int, help="Number of attached images")
@click.pass_context
def submit_bonus(ctx: click.Context, post_id: str, user_id: str, text: str, images: int):
    """Request the bonus for POST_ID on behalf of USER_ID."""
    from funfarm.config import build_bonus_workflow
    from funfarm.policy.models import ActionContent

    workflow = build_bonus_workflow(_engine(ctx), ctx.obj)
    result = workflow.submit_bonus_request(
        post_id, user_id, ActionContent(text=text, image_count=images)
    )
    if result.created:
        console.print(f"  [green]Submitted[/] request {result.request.id}")
    elif result.request is not None:
        console.print(f"  [yellow]Already requested[/] (status: {result.status})")
    else:
        console.print("  [red]Not eligible:[/] the post needs text and at least one image")


@bonus.command(name="resolve")
@click.argument("request_id")
@click.argument("decision", type=click.Choice(["approved", "rejected"]))
@click.option("--reviewer", "-r", default="admin", help="Reviewer id")
@click.pass_context
def resolve_bonus(ctx: click.Context, request_id: str, decision: str, reviewer: str):
    """Approve or reject a pending bonus request."""
    from funfarm.config import build_bonus_workflow

    workflow = build_bonus_workflow(_engine(ctx), ctx.obj)
    request = workflow.resolve_bonus_request(request_id, decision, reviewer)
    if request is None:
        raise click.ClickException(f"Bonus request '{request_id}' not found")
    console.print(f"  Request {request.id}: [bold]{request.status.value}[/]")


@bonus.command(name="list")
@click.option("--status", "-s", default=None, type=click.Choice(["pending", "approved", "rejected"]))
@click.pass_context
def list_bonus(ctx: click.Context, status: str | None):
    """List bonus requests."""
    from funfarm.config import build_bonus_workflow

    workflow = build_bonus_workflow(_engine(ctx), ctx.obj)
    requests = workflow.store.list_requests(status=status)
    if not requests:
        console.print("[yellow]No bonus requests.[/]")
        return

    table = Table(title=f"Bonus requests ({len(requests)})")
    table.add_column("ID", style="dim")
    table.add_column("Post", style="cyan")
    table.add_column("User")
    table.add_column("Status")
    table.add_column("Amount", justify="right")
    for r in requests:
        table.add_row(r.id[:8], r.post_id, r.user_id, r.status.value, f"{r.bonus_amount:,}")
    console.print(table)


# ── Ledger ───────────────────────────────────────────────────────────


@main.group()
def ledger():
    """Reward ledger bookkeeping."""


@ledger.command(name="reconcile")
@click.argument("account_id")
@click.pass_context
def reconcile(ctx: click.Context, account_id: str):
    """Recompute ACCOUNT_ID's pending reward from its reward history."""
    engine = _engine(ctx)
    before = _account_or_fail(engine, account_id)
    after = engine.reconcile_pending(account_id)
    if after.pending_reward == before.pending_reward:
        console.print(f"  [green]OK[/] pending {after.pending_reward:,}")
    else:
        console.print(
            f"  [yellow]FIXED[/] pending {before.pending_reward:,} -> {after.pending_reward:,}"
        )


@ledger.command(name="summary")
@click.argument("account_id")
@click.option("--day", "-d", default=None, help="YYYY-MM-DD (default: today)")
@click.pass_context
def summary(ctx: click.Context, account_id: str, day: str | None):
    """Per-action reward counts for one day."""
    engine = _engine(ctx)
    _account_or_fail(engine, account_id)
    result = engine.daily_summary(account_id, day)

    table = Table(title=f"{account_id} on {result.day}")
    table.add_column("Action", style="cyan")
    table.add_column("Count", justify="right")
    for action, count in sorted(result.counts.items()):
        table.add_row(action, str(count))
    console.print(table)
    console.print(
        f"  Total: [bold]{result.total:,}[/]  "
        f"(counted toward cap: {result.cap_counted:,} / {engine.policy.daily_reward_cap:,})"
    )


if __name__ == "__main__":
    main()
