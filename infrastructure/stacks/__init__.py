"""CDK stacks for Next.js site hosting."""

from .site_stack import NextjsSiteStack

__all__ = ["NextjsSiteStack"]
