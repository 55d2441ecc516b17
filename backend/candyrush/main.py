from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({
        'message': 'Welcome to the Candy Rush game server!',
        'leaderboard': current_app.extensions.get('candyrush.scores') is not None,
    })
