"""
MCP server registry and monitoring API.

Blueprint: mcp_bp
Prefix: /api/v1/mcp

Endpoints:
    GET   /servers                       -- Registered servers (?status=)
    POST  /servers                       -- Register a server (admin, lead)
    GET   /servers/<id>                  -- One server with discovered tools
    POST  /servers/<id>/heartbeat        -- Report status and tools (admin, lead)
    GET   /servers/<id>/stats            -- Execution totals for the caller's team
    GET   /connections                   -- Open connections of the caller's team (?server_id=)
    POST  /connections                   -- Record a connection for the caller
    POST  /connections/<id>/close        -- Mark a connection disconnected
    POST  /tool-execution                -- Log one tool call
"""

from flask import Blueprint, jsonify, request

from governance.blueprints import json_body
from governance.middleware.auth_required import current_scope, require_auth
from governance.services import mcp_service

mcp_bp = Blueprint("mcp", __name__, url_prefix="/api/v1/mcp")


@mcp_bp.route("/servers", methods=["GET"])
@require_auth
def list_servers():
    servers = mcp_service.list_servers(current_scope(), status=request.args.get("status"))
    return jsonify({"servers": [s.to_dict() for s in servers], "count": len(servers)}), 200


@mcp_bp.route("/servers", methods=["POST"])
@require_auth
def register_server():
    server = mcp_service.register_server(current_scope(), json_body())
    return jsonify({"server": server.to_dict()}), 201


@mcp_bp.route("/servers/<int:server_id>", methods=["GET"])
@require_auth
def get_server(server_id):
    return jsonify({"server": mcp_service.get_server(current_scope(), server_id).to_dict()}), 200


@mcp_bp.route("/servers/<int:server_id>/heartbeat", methods=["POST"])
@require_auth
def heartbeat(server_id):
    server = mcp_service.record_heartbeat(current_scope(), server_id, json_body())
    return jsonify({"server": server.to_dict()}), 200


@mcp_bp.route("/servers/<int:server_id>/stats", methods=["GET"])
@require_auth
def server_stats(server_id):
    return jsonify({"stats": mcp_service.server_stats(current_scope(), server_id)}), 200


@mcp_bp.route("/connections", methods=["GET"])
@require_auth
def list_connections():
    connections = mcp_service.list_active_connections(
        current_scope(), server_id=request.args.get("server_id")
    )
    return jsonify({"connections": [c.to_dict() for c in connections], "count": len(connections)}), 200


@mcp_bp.route("/connections", methods=["POST"])
@require_auth
def open_connection():
    connection = mcp_service.open_connection(current_scope(), json_body())
    return jsonify({"connection": connection.to_dict()}), 201


@mcp_bp.route("/connections/<int:connection_id>/close", methods=["POST"])
@require_auth
def close_connection(connection_id):
    connection = mcp_service.close_connection(current_scope(), connection_id)
    return jsonify({"connection": connection.to_dict()}), 200


@mcp_bp.route("/tool-execution", methods=["POST"])
@require_auth
def tool_execution():
    execution = mcp_service.record_tool_execution(current_scope(), json_body())
    return jsonify({"execution": execution.to_dict()}), 201
