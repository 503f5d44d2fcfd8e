"""
Protected resource routes.

POST /posts is the canonical state-changing request: by the time the
view runs it has passed the CSRF check (unless bearer-authenticated)
and the per-client rate limit.
"""

from flask import g, jsonify, session

from gatekeeper import error_response
from gatekeeper.api import api_bp
from gatekeeper.api.forms import PostForm
from gatekeeper.auth.routes import login_required


@api_bp.route('/health')
def health():
    """Load balancer probe: never CSRF-checked or rate limited."""
    return jsonify({'status': 'ok'})


@api_bp.route('/posts', methods=['POST'])
@login_required
def create_post():
    form = PostForm()
    if not form.validate_on_submit():
        return error_response(400, 'Bad Request', 'Invalid post.', errors=form.errors)

    author = session.get('user_email') or g.get('bearer_subject')
    return jsonify({'accepted': True, 'title': form.title.data, 'author': author}), 202
