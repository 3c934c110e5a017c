# api/directory.py
"""
Member and program listings served from the hosted data store
"""

from flask import Blueprint, current_app, jsonify

directory_bp = Blueprint('directory', __name__)


def _directory():
    return current_app.extensions['notifier'].directory


@directory_bp.route('/students', methods=['GET'])
def list_students():
    return jsonify({'success': True, 'students': _directory().list_students()})


@directory_bp.route('/users', methods=['GET'])
def list_users():
    return jsonify({'success': True, 'users': _directory().list_users()})


@directory_bp.route('/programs', methods=['GET'])
def list_programs():
    """Active programs, newest first"""
    programs = _directory().list_active_programs()
    return jsonify({'success': True, 'programs': [p.to_dict() for p in programs]})
