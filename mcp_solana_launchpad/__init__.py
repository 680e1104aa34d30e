"""
Solana Launchpad Package Initialization

This package provides a factory-based token launchpad built on the Model Context Protocol (MCP).
A factory mass-produces independent, whitelisted, time-boxed sales of a fungible asset; each
sale prices units with a decaying demand curve, seeds a liquidity pool when it ends and
releases purchased units through linear vesting.

The package includes:
- Sale factory, template management and registry
- Demand-and-decay pricing in integer fixed point
- Merkle whitelists bound to the network and the sale
- Linear vesting, termination and refunds
- Liquidity finalization against a constant product venue
- Custom error handling
- MCP server implementation for easy integration
"""
