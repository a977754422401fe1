"""
Command-line interface for creating or updating infrastructure stacks
"""

import sys
import argparse
from pathlib import Path

from stack_deployer.api import get_provisioning_client
from stack_deployer.services import StackDeployer, DeploymentRequest, new_change_set_name
from stack_deployer.utils.logger import get_logger, set_level
from stack_deployer.utils.config import get_settings
from stack_deployer.utils.validators import ValidationError

logger = get_logger(__name__)


def cmd_deploy(args):
    """Create or update a stack from a template file"""
    logger.info(f"Deploying stack: {args.stack_name}")

    try:
        settings = get_settings()
        if args.region:
            settings = settings.model_copy(update={"aws_region": args.region})
        set_level(settings.log_level)

        template_body = Path(args.template).read_text(encoding="utf-8")
        change_set_name = args.change_set_name or new_change_set_name(args.stack_name)

        request = DeploymentRequest(
            template_body=template_body,
            stack_name=args.stack_name,
            change_set_name=change_set_name
        )

        client = get_provisioning_client(args.provider, config=settings)
        result = StackDeployer(client).deploy(request)

        print(f"\n{'='*60}")
        print(f" STACK: {result['stack_name']}")
        print(f"{'='*60}")
        print(f"  Provider:    {client.get_provider_name()}")
        print(f"  Change set:  {result['change_set_name']}")
        print(f"  Result:      {result['action'].replace('_', ' ').upper()}")
        print(f"{'='*60}\n")

    except ValidationError as e:
        logger.error(f"❌ Invalid input: {str(e)}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Deployment failed: {str(e)}")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stack Deployer - create or update infrastructure stacks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the stack, or update it through a change set if it exists
  stack-deployer deploy --template examples/templates/bucket.yml --stack-name my-app

  # Use an explicit change set name
  stack-deployer deploy --template cf.yml --stack-name my-app --change-set-name my-app-v2
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # deploy
    deploy_parser = subparsers.add_parser("deploy", help="Create or update a stack")
    deploy_parser.add_argument("--template", required=True, help="Path to the rendered template")
    deploy_parser.add_argument("--stack-name", required=True, help="Stack name")
    deploy_parser.add_argument("--change-set-name", help="Change set name (default: <stack-name>-<timestamp>)")
    deploy_parser.add_argument("--provider", choices=["CLOUDFORMATION"], help="Provisioning provider (default: from config)")
    deploy_parser.add_argument("--region", help="Override the configured AWS region")
    deploy_parser.set_defaults(func=cmd_deploy)

    return parser


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()

    # Parse and execute
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()
