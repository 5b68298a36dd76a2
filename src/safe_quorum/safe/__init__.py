"""Safe smart-account protocol layer.

Contract ABIs and canonical deployments, the EIP-712 transaction hash, a
per-owner account handle that reads state and executes transactions, a
factory that deploys or connects to Safes, and a client for the Safe
Transaction Service that stores proposals and confirmations off-chain.
"""
