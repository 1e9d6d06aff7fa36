# Dependencies
# ============
# Standard
# --------
from typing import List, Tuple

# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import (
    Blueprint, abort, flash, redirect, render_template, request, url_for
)
# See https://flask-login.readthedocs.io/
from flask_login import login_required
# See https://flask-wtf.readthedocs.io/
from flask_wtf import FlaskForm
# See https://wtforms.readthedocs.io/
from wtforms import BooleanField, SelectField

# Local
# -----
from .records import Collection, Element, Item, ItemType
from .utils import Pluralizer, parse_nested_form

bp = Blueprint('items', __name__)


class ItemForm(FlaskForm):
    public = BooleanField('Public')
    featured = BooleanField('Featured')
    # Setting a default value works around SelectFields returning the
    # string 'None' if no selection is made.
    item_type_id = SelectField('Item type', default='')
    collection_id = SelectField('Collection', default='')


def group_elements(elements: List[Element]) -> List[
        Tuple[str, List[Element]]]:
    '''Groups elements by element set, keeping their order.'''
    groups = list()
    for element in elements:
        if groups and groups[-1][0] == element.set_name:
            groups[-1][1].append(element)
        else:
            groups.append((element.set_name, [element]))
    return groups


def _to_id(value: str):
    return int(value) if value and value.isdigit() else None


@bp.route('/')
@bp.route('/items')
def index():
    items = Item.all()
    return render_template('index.html', items=items)


@bp.route('/items/<int:number>')
def display(number):
    item = Item.load(number)
    if item.doc_id == 0:
        abort(404)
    return render_template(
        'display-item.html', record=item,
        element_groups=group_elements(item.get_elements()))


@bp.route('/items/edit/<int:number>', methods=['GET', 'POST'])
@login_required
def edit_item(number):
    item = Item.load(number)

    # If number is wrong, we reinforce the point by redirecting to 0:
    if item.doc_id != number:
        flash("You are trying to update an item that doesn't exist."
              " Try filling out this new one instead.", 'error')
        return redirect(url_for('items.edit_item', number=0))

    form = ItemForm(data={
        'public': bool(item.get('public')),
        'featured': bool(item.get('featured')),
        'item_type_id': str(item.get('item_type_id') or ''),
        'collection_id': str(item.get('collection_id') or ''),
    })
    form.item_type_id.choices = ItemType.get_choices()
    form.collection_id.choices = Collection.get_choices()

    element_errors = dict()
    if request.method == 'POST':
        posted = parse_nested_form(request.form).get('Elements', dict())
        if not isinstance(posted, dict):
            posted = dict()
        regrouping = any(k.startswith(('add_element_', 'remove_element_'))
                     for k in request.form)
        is_valid = form.validate()
        element_errors = item.validate_element_texts(posted)
        if is_valid and not element_errors and not regrouping:
            value = dict(item)
            value.update({
                'public': form.public.data,
                'featured': form.featured.data,
                'item_type_id': _to_id(form.item_type_id.data),
                'collection_id': _to_id(form.collection_id.data),
            })
            error = item._save(value) or item.save_element_texts(posted)
            if error:
                flash(error, 'error')
                return redirect(url_for('items.edit_item', number=number))
            if number:
                flash('Successfully updated item.', 'success')
            else:
                flash('Successfully added item.', 'success')
            return redirect(url_for('items.display', number=item.doc_id))

    if form.errors or element_errors:
        if 'csrf_token' in form.errors.keys():
            msg = ('Could not save changes as your form session has expired.'
                   ' Please try again.')
        else:
            msg = ('Could not save changes as there {:/was an error/were N'
                   ' errors}. See below for details.'
                   .format(Pluralizer(len(form.errors) + len(element_errors))))
        flash(msg, 'error')

    return render_template(
        'edit-item.html', form=form, record=item, doc_id=number,
        element_groups=group_elements(item.get_elements()),
        element_errors=element_errors)
