"""Application package for the pedidos/mockups/atendimento backend.

This package exposes the service, repository and model modules used by
the FastAPI application. Serverless-style handlers live in `functions`
and the remote collaborators (Evolution API, object storage, Google
OAuth) are wrapped in `utils`.
"""
