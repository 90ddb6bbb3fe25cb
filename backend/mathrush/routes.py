from flask import Blueprint, jsonify
import time

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the MathRush quiz server!'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': time.time()})
