# SPDX-License-Identifier: Apache-2.0
"""
Gremlin Connector Tests

Unit tests for the where-clause compiler, query/mutation builder, property
coercion, result normalization, execution engine, transaction registry and
the public CRUD surface, run against an in-memory mock connection.
"""
